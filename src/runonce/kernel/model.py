"""Pydantic models for changelogs, changesets and actions."""

from typing import Any, Callable, Iterable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from .fingerprint import describe_callable, fingerprint_actions


@runtime_checkable
class Action(Protocol):
    """One executable step of a changeset.

    execute() performs a side effect; raising any Exception marks the step
    (and its changeset) as failed.
    """

    def execute(self) -> None: ...


class FunctionAction:
    """Action backed by a zero-argument callable."""

    def __init__(self, func: Callable[[], Any], name: Optional[str] = None):
        if not callable(func):
            raise TypeError(f"Action must be callable, got {type(func).__name__}")
        self.func = func
        self.name = name or getattr(func, "__name__", "action")

    def execute(self) -> None:
        self.func()

    def fingerprint_payload(self) -> dict:
        return describe_callable(self.func)

    def __repr__(self) -> str:
        return f"FunctionAction({self.name})"


def as_action(value: Any, name: Optional[str] = None) -> Action:
    """Coerce a callable into an Action; Actions are returned unchanged."""
    if isinstance(value, Action):
        return value
    if callable(value):
        return FunctionAction(value, name)
    raise TypeError(f"Expected an Action or a callable, got {type(value).__name__}")


class ChangeSet(BaseModel):
    """The smallest unit of idempotently tracked work."""
    id: str  # Local id, unique within its changelog
    author: str  # Audit only
    tags: frozenset[str] = Field(default_factory=frozenset)
    actions: tuple[Any, ...] = ()  # Actions; plain callables are wrapped in FunctionAction
    changelog_id: str = ""  # Stamped by the owning Changelog

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('id')
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not v:
            raise ValueError("Changeset id must not be empty")
        return v

    @field_validator('tags', mode='before')
    @classmethod
    def validate_tags(cls, v: Any) -> Any:
        """A single tag string means one tag, not a set of characters."""
        if isinstance(v, str):
            return frozenset([v])
        return v

    @field_validator('actions', mode='before')
    @classmethod
    def validate_actions(cls, v: Any) -> tuple:
        try:
            return tuple(as_action(a) for a in v)
        except TypeError as e:
            raise ValueError(str(e)) from e

    @property
    def identifier(self) -> str:
        """Composed id used for persistence: {changelog_id}_{id}, or {id}."""
        if self.changelog_id:
            return f"{self.changelog_id}_{self.id}"
        return self.id

    @property
    def fingerprint(self) -> str:
        """Deterministic digest of the action definitions (sha256:...)."""
        return fingerprint_actions(self.actions)


class Changelog(BaseModel):
    """An ordered batch of changesets originating from one source.

    Order is execution order.
    """
    id: str = ""
    change_sets: tuple[ChangeSet, ...] = ()

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('change_sets')
    @classmethod
    def stamp_change_sets(cls, v: tuple, info: ValidationInfo) -> tuple:
        """Stamp every changeset with this changelog's id."""
        changelog_id = info.data.get("id", "")
        return tuple(
            cs if cs.changelog_id == changelog_id else cs.model_copy(update={"changelog_id": changelog_id})
            for cs in v
        )

    @model_validator(mode='after')
    def validate_unique_ids(self) -> 'Changelog':
        seen = set()
        duplicates = set()
        for cs in self.change_sets:
            if cs.identifier in seen:
                duplicates.add(cs.identifier)
            seen.add(cs.identifier)
        if duplicates:
            raise ValueError(f"Duplicate changeset ids not allowed: {sorted(duplicates)}")
        return self

    def with_id(self, changelog_id: str) -> 'Changelog':
        """Copy of this changelog under another id, changesets re-stamped."""
        return Changelog(id=changelog_id, change_sets=self.change_sets)

    def matched_change_sets(self, target_tags: Iterable[str] = ()) -> List[ChangeSet]:
        from .tags import matched_change_sets
        return matched_change_sets(self.change_sets, target_tags)
