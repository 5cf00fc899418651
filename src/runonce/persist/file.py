"""Filesystem persist engine.

Layout under the state directory:
- records/<sha256(id)>.json  canonical JSON ExecutionRecord
- locks/<sha256(id)>.lock    present while the changeset is RUNNING

Lock files are created with O_CREAT | O_EXCL, which is atomic on local
filesystems, so several processes may share one state directory.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from runonce._internal.atomic_write import atomic_write_with_fsync, fsync_directory
from runonce._internal.canonical_json import canonical_dumps
from runonce.codes import Status
from runonce.config import PersistConfig
from runonce.errors import ConnectivityError, LockConflictError, RunOnceError
from runonce.kernel.record import ExecutionRecord, StoredStatus, utc_now
from runonce.persist.base import PersistEngine

logger = logging.getLogger(__name__)


def _key(change_set_id: str) -> str:
    return hashlib.sha256(change_set_id.encode("utf-8")).hexdigest()


class FilePersistEngine(PersistEngine):
    """Execution records stored as JSON files in a directory."""

    def __init__(self, directory: Union[str, os.PathLike], configuration: Optional[PersistConfig] = None):
        super().__init__(configuration)
        self.directory = Path(directory)
        self.records_dir = self.directory / "records"
        self.locks_dir = self.directory / "locks"

    def _record_path(self, change_set_id: str) -> Path:
        return self.records_dir / f"{_key(change_set_id)}.json"

    def _lock_path(self, change_set_id: str) -> Path:
        return self.locks_dir / f"{_key(change_set_id)}.lock"

    def _read(self, path: Path) -> Optional[ExecutionRecord]:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        return ExecutionRecord.model_validate_json(data)

    def _write(self, record: ExecutionRecord) -> None:
        payload = canonical_dumps(record.model_dump(mode="json"))
        atomic_write_with_fsync(self._record_path(record.change_set_id), payload + "\n")

    def check_connection(self) -> None:
        try:
            self.records_dir.mkdir(parents=True, exist_ok=True)
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConnectivityError(f"State directory {self.directory} is not usable: {e}") from e
        for directory in (self.records_dir, self.locks_dir):
            if not os.access(directory, os.W_OK):
                raise ConnectivityError(f"State directory {directory} is not writable")

    def query_status(self, change_set_id: str) -> Optional[StoredStatus]:
        record = self._read(self._record_path(change_set_id))
        return record.stored_status() if record else None

    def _release(self, lock_path: Path) -> None:
        lock_path.unlink(missing_ok=True)
        fsync_directory(self.locks_dir)

    def lock(self, change_set_id: str, author: str) -> Optional[StoredStatus]:
        lock_path = self._lock_path(change_set_id)
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockConflictError(
                change_set_id,
                f"Changeset '{change_set_id}' is already locked ({lock_path}); "
                f"remove the lock file if no other run holds it",
            ) from None
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{os.getpid()} {change_set_id}\n")
                f.flush()
                os.fsync(f.fileno())
            # Another run may have completed the changeset since it was queried
            current = self._read(self._record_path(change_set_id))
            if current is not None and current.status is Status.OK:
                self._release(lock_path)
                logger.debug("Changeset %s completed elsewhere, lock released", change_set_id)
                return current.stored_status()
            self._write(ExecutionRecord(change_set_id=change_set_id, author=author, status=Status.RUNNING))
        except BaseException:
            self._release(lock_path)
            raise
        logger.debug("Locked %s", change_set_id)
        return None

    def unlock(self, change_set_id: str, status: Status, fingerprint: str, log: List[str]) -> None:
        lock_path = self._lock_path(change_set_id)
        if not lock_path.exists():
            raise RunOnceError(f"Changeset '{change_set_id}' is not locked")
        current = self._read(self._record_path(change_set_id))
        if current is None:
            raise RunOnceError(f"No record for locked changeset '{change_set_id}'")
        self._write(current.model_copy(update={
            "status": status,
            "status_date": utc_now(),
            "fingerprint": fingerprint,
            "log": list(log),
        }))
        lock_path.unlink()
        fsync_directory(self.locks_dir)
        logger.debug("Unlocked %s with status %s", change_set_id, status.value)

    def get(self, change_set_id: str) -> Optional[ExecutionRecord]:
        return self._read(self._record_path(change_set_id))

    def records(self) -> List[ExecutionRecord]:
        """All records, ordered by lock date."""
        if not self.records_dir.is_dir():
            return []
        found = [self._read(path) for path in self.records_dir.glob("*.json")]
        return sorted((r for r in found if r is not None), key=lambda r: (r.lock_date, r.change_set_id))
