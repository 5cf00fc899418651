"""runonce: run changesets exactly once, with drift detection and audit logs."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("runonce")
except PackageNotFoundError:
    __version__ = "dev"

from runonce.api import Runner
from runonce.codes import Status
from runonce.config import PersistConfig, RunConfiguration
from runonce.errors import (
    ChangelogLoadError,
    ChangeSetError,
    ConnectivityError,
    ExitError,
    IntegrityError,
    LockConflictError,
    RunOnceError,
)
from runonce.kernel.dsl import change_log
from runonce.kernel.model import Action, ChangeSet, Changelog, FunctionAction
from runonce.kernel.report import BatchReport, ChangeLogReport
from runonce.kernel.tags import matched_change_sets
from runonce.loader import load_changelog, load_changelog_file

__all__ = [
    "__version__",
    "Runner",
    "Status",
    "PersistConfig",
    "RunConfiguration",
    "RunOnceError",
    "ChangelogLoadError",
    "ChangeSetError",
    "ConnectivityError",
    "ExitError",
    "IntegrityError",
    "LockConflictError",
    "change_log",
    "Action",
    "ChangeSet",
    "Changelog",
    "FunctionAction",
    "BatchReport",
    "ChangeLogReport",
    "matched_change_sets",
    "load_changelog",
    "load_changelog_file",
]
