"""Builders used by changelog scripts.

    changelog = change_log("accounts")
    create = changelog.change_set("create-table", author="alice", tags=["schema"])

    @create.action
    def create_table():
        ...
"""

from typing import Any, Callable, Iterable, List, Optional

from .model import ChangeSet, Changelog, as_action


class ChangeSetBuilder:
    def __init__(self, id: str, author: str, tags: Iterable[str] = ()):
        self.id = id
        self.author = author
        self.tags = [tags] if isinstance(tags, str) else list(tags)
        self._actions: List[Any] = []

    def action(self, func: Optional[Callable[[], Any]] = None, name: Optional[str] = None):
        """Register an action, in declaration order.

        Accepts an Action or a zero-argument callable, and returns it
        unchanged so it can be used as a decorator, bare or as
        ``@cs.action(name="create-table")``. The name labels the action in
        run logs; it defaults to the callable's __name__.
        """
        if func is None:
            return lambda f: self.action(f, name=name)
        self._actions.append(as_action(func, name))
        return func

    def build(self, changelog_id: str = "") -> ChangeSet:
        return ChangeSet(
            id=self.id,
            author=self.author,
            tags=frozenset(self.tags),
            actions=tuple(self._actions),
            changelog_id=changelog_id,
        )


class ChangeLogBuilder:
    def __init__(self, id: str = ""):
        self.id = id
        self._change_sets: List[ChangeSetBuilder] = []

    def change_set(self, id: str, author: str, tags: Iterable[str] = ()) -> ChangeSetBuilder:
        builder = ChangeSetBuilder(id, author, tags)
        self._change_sets.append(builder)
        return builder

    def build(self) -> Changelog:
        return Changelog(
            id=self.id,
            change_sets=tuple(cs.build(self.id) for cs in self._change_sets),
        )


def change_log(id: str = "") -> ChangeLogBuilder:
    """Start a changelog. An empty id is replaced by the source's path when loaded from a file."""
    return ChangeLogBuilder(id)
