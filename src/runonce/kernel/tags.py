"""Tag-based changeset selection."""

from typing import Iterable, List, Sequence, TypeVar

from .model import ChangeSet

_T = TypeVar("_T", bound=ChangeSet)


def matched_change_sets(change_sets: Sequence[_T], target_tags: Iterable[str] = ()) -> List[_T]:
    """
    Select the changesets to run for the given tags.

    - No target tags: every changeset, in original order.
    - Otherwise: the changesets carrying at least one of the target tags,
      original relative order preserved.
    """
    targets = frozenset(target_tags)
    if not targets:
        return list(change_sets)
    return [cs for cs in change_sets if not targets.isdisjoint(cs.tags)]
