"""Pytest configuration for tests.

No sys.path hacks - tests should import from the installed runonce package.
"""

from pathlib import Path

import pytest

from runonce.codes import Status
from runonce.config import RunConfiguration
from runonce.persist.memory import InMemoryPersistEngine

FIXTURES = Path(__file__).resolve().parent / "fixtures"


class RecordingPersistEngine(InMemoryPersistEngine):
    """In-memory engine that remembers every call the runner made."""

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.connection_checks = 0
        self.queried: list[str] = []
        self.locked: list[str] = []
        self.unlocked: list[tuple[str, Status]] = []

    def check_connection(self) -> None:
        self.connection_checks += 1
        super().check_connection()

    def query_status(self, change_set_id):
        self.queried.append(change_set_id)
        return super().query_status(change_set_id)

    def lock(self, change_set_id, author):
        completed = super().lock(change_set_id, author)
        if completed is None:
            self.locked.append(change_set_id)
        return completed

    def unlock(self, change_set_id, status, fingerprint, log):
        super().unlock(change_set_id, status, fingerprint, log)
        self.unlocked.append((change_set_id, status))

    def reset_calls(self) -> None:
        self.connection_checks = 0
        self.queried.clear()
        self.locked.clear()
        self.unlocked.clear()


@pytest.fixture
def engine():
    return RecordingPersistEngine()


@pytest.fixture
def config(engine):
    return RunConfiguration(persist_engine=engine)


@pytest.fixture
def changelogs_dir():
    return FIXTURES / "changelogs"
