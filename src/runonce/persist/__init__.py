"""Persist engines: where changeset execution records live."""

from runonce.persist.base import PersistEngine
from runonce.persist.file import FilePersistEngine
from runonce.persist.memory import InMemoryPersistEngine
from runonce.persist.null import NullPersistEngine

__all__ = [
    "PersistEngine",
    "FilePersistEngine",
    "InMemoryPersistEngine",
    "NullPersistEngine",
]
