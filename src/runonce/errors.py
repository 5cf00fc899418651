"""Error taxonomy for changelog execution.

Every error raised by runonce derives from RunOnceError. Only ExitError is
meant to be seen by callers of the Runner; the others are either fatal
(ConnectivityError, ChangelogLoadError) or recorded as the cause of a
ChangeSetError.
"""

from typing import Optional, Sequence


class RunOnceError(Exception):
    """Base class for runonce errors."""


class ConnectivityError(RunOnceError):
    """Raised when a persist engine cannot reach its storage."""


class LockConflictError(RunOnceError):
    """Raised when a changeset is already locked by another holder."""

    def __init__(self, change_set_id: str, message: Optional[str] = None):
        self.change_set_id = change_set_id
        super().__init__(message or f"Changeset '{change_set_id}' is already locked")


class IntegrityError(RunOnceError):
    """Raised when an already applied changeset no longer matches its fingerprint."""

    def __init__(self, change_set_id: str, stored_fingerprint: str, current_fingerprint: str):
        self.change_set_id = change_set_id
        self.stored_fingerprint = stored_fingerprint
        self.current_fingerprint = current_fingerprint
        super().__init__(
            f"Changeset '{change_set_id}' was already applied with fingerprint "
            f"{stored_fingerprint} but its content now hashes to {current_fingerprint}"
        )


class ChangeSetError(RunOnceError):
    """A changeset that ended KO or could not be run."""

    def __init__(self, change_set_id: str, cause: BaseException):
        self.change_set_id = change_set_id
        self.cause = cause
        super().__init__(f"Changeset '{change_set_id}' failed: {cause!r}")


class ChangelogLoadError(RunOnceError):
    """Raised when a changelog script cannot be turned into a Changelog."""

    def __init__(self, origin: str, message: str):
        self.origin = origin
        super().__init__(f"Cannot load changelog from {origin}: {message}")


class ExitError(RunOnceError):
    """The run failed: at least one changelog report is not empty."""

    def __init__(self, reports: Sequence = (), message: Optional[str] = None):
        self.reports = tuple(reports)
        if message is None:
            failed = sum(len(report.errors) for report in self.reports)
            message = f"{failed} changeset(s) failed"
        super().__init__(message)

    @property
    def errors(self) -> list:
        """All ChangeSetErrors across the carried reports, in run order."""
        return [error for report in self.reports for error in report.errors]
