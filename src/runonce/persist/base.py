"""Contract between the execution engine and a persistence backend."""

from abc import ABC, abstractmethod
from typing import List, Optional

from runonce.codes import Status
from runonce.config import PersistConfig
from runonce.kernel.record import StoredStatus


class PersistEngine(ABC):
    """Storage for changeset execution records.

    Guarantees required by the runner:
    - check_connection() raises ConnectivityError when storage is unreachable.
    - query_status() is read-only and returns the latest terminal status, or
      None when the changeset was never completed.
    - lock() is atomic and exclusive across every process sharing the
      storage; it raises LockConflictError when the changeset is already
      locked. If the changeset completed OK since it was queried, lock()
      leaves the lock and record untouched and returns that StoredStatus;
      otherwise it returns None once the lock is held.
    - unlock() is durable before it returns.
    """

    def __init__(self, configuration: Optional[PersistConfig] = None):
        self.configuration = configuration or PersistConfig()

    @abstractmethod
    def check_connection(self) -> None:
        ...

    @abstractmethod
    def query_status(self, change_set_id: str) -> Optional[StoredStatus]:
        ...

    @abstractmethod
    def lock(self, change_set_id: str, author: str) -> Optional[StoredStatus]:
        ...

    @abstractmethod
    def unlock(self, change_set_id: str, status: Status, fingerprint: str, log: List[str]) -> None:
        ...
