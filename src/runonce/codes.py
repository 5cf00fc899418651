"""Status constants for changeset execution records.

These constants prevent stringly-typed statuses and ensure persist engines
and client code agree on the persisted values.
"""

from enum import Enum


class Status(str, Enum):
    """Execution status of a changeset."""

    # Transient: lock held, execution in progress
    RUNNING = "RUNNING"

    # Terminal
    OK = "OK"
    KO = "KO"

    @property
    def is_terminal(self) -> bool:
        return self is not Status.RUNNING
