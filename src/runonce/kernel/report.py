"""Reports produced by changelog executions."""

from dataclasses import dataclass
from typing import List, Tuple

from runonce.errors import ChangeSetError


@dataclass(frozen=True)
class ChangeLogReport:
    """Ordered failures of one changelog execution. Empty means success."""
    changelog_id: str
    errors: Tuple[ChangeSetError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def failed_ids(self) -> List[str]:
        return [error.change_set_id for error in self.errors]


@dataclass(frozen=True)
class BatchReport:
    """Reports of every changelog run by a batch, in run order."""
    reports: Tuple[ChangeLogReport, ...] = ()

    @property
    def ok(self) -> bool:
        return all(report.ok for report in self.reports)

    @property
    def failed_reports(self) -> List[ChangeLogReport]:
        return [report for report in self.reports if not report.ok]
