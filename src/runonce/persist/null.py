"""Persist engine that persists nothing."""

import logging
from typing import List, Optional

from runonce.codes import Status
from runonce.kernel.record import StoredStatus
from runonce.persist.base import PersistEngine

logger = logging.getLogger(__name__)


class NullPersistEngine(PersistEngine):
    """Default engine: no history, so every changeset runs on every call."""

    def check_connection(self) -> None:
        logger.debug("NullPersistEngine: no storage to check")

    def query_status(self, change_set_id: str) -> Optional[StoredStatus]:
        return None

    def lock(self, change_set_id: str, author: str) -> Optional[StoredStatus]:
        logger.warning(
            "No persist engine configured: changeset %s will not be recorded", change_set_id
        )
        return None

    def unlock(self, change_set_id: str, status: Status, fingerprint: str, log: List[str]) -> None:
        logger.info("Changeset %s finished with status %s (not persisted)", change_set_id, status.value)
