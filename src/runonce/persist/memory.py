"""In-process persist engine."""

import threading
from typing import Dict, List, Optional

from runonce.codes import Status
from runonce.config import PersistConfig
from runonce.errors import LockConflictError, RunOnceError
from runonce.kernel.record import ExecutionRecord, StoredStatus, utc_now
from runonce.persist.base import PersistEngine


class InMemoryPersistEngine(PersistEngine):
    """Records held in a dict; exclusive only within one process.

    Useful for tests and for runs that share an engine across several
    Runner calls.
    """

    def __init__(self, configuration: Optional[PersistConfig] = None):
        super().__init__(configuration)
        self._records: Dict[str, ExecutionRecord] = {}
        self._mutex = threading.Lock()

    def check_connection(self) -> None:
        return None

    def query_status(self, change_set_id: str) -> Optional[StoredStatus]:
        with self._mutex:
            record = self._records.get(change_set_id)
        return record.stored_status() if record else None

    def lock(self, change_set_id: str, author: str) -> Optional[StoredStatus]:
        with self._mutex:
            current = self._records.get(change_set_id)
            if current is not None and current.status is Status.RUNNING:
                raise LockConflictError(change_set_id)
            if current is not None and current.status is Status.OK:
                return current.stored_status()
            self._records[change_set_id] = ExecutionRecord(
                change_set_id=change_set_id,
                author=author,
                status=Status.RUNNING,
                fingerprint=current.fingerprint if current else None,
            )
        return None

    def unlock(self, change_set_id: str, status: Status, fingerprint: str, log: List[str]) -> None:
        with self._mutex:
            current = self._records.get(change_set_id)
            if current is None or current.status is not Status.RUNNING:
                raise RunOnceError(f"Changeset '{change_set_id}' is not locked")
            self._records[change_set_id] = current.model_copy(update={
                "status": status,
                "status_date": utc_now(),
                "fingerprint": fingerprint,
                "log": list(log),
            })

    def get(self, change_set_id: str) -> Optional[ExecutionRecord]:
        with self._mutex:
            return self._records.get(change_set_id)

    def records(self) -> List[ExecutionRecord]:
        """All records, in lock order."""
        with self._mutex:
            return list(self._records.values())
