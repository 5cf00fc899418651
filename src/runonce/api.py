"""Public API for runonce.

Runner is the caller-facing driver: it loads changelogs, runs them through
the kernel, and turns any non-empty report into an ExitError.
"""

import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

from runonce.config import RunConfiguration
from runonce.errors import ExitError
from runonce.kernel.model import Changelog
from runonce.kernel.orchestrator import execute_changelog
from runonce.kernel.report import BatchReport, ChangeLogReport
from runonce.loader import load_changelog, load_changelog_file

logger = logging.getLogger(__name__)

Tags = Union[str, Iterable[str]]


def _normalize_tags(tags: Tags) -> List[str]:
    """A single tag may be given as a plain string."""
    if isinstance(tags, str):
        return [tags]
    return list(tags)


def _normalize_path(path: Union[str, os.PathLike, Path]) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


def discover_changelogs(root: Union[str, os.PathLike], pattern: str) -> List[Path]:
    """Files under root (recursively) whose name fully matches pattern, sorted by path."""
    regex = re.compile(pattern)
    root_path = _normalize_path(root)
    return sorted(
        (p for p in root_path.rglob("*") if p.is_file() and regex.fullmatch(p.name)),
        key=lambda p: p.as_posix(),
    )


class Runner:
    """Runs changelogs with one RunConfiguration."""

    def __init__(self, configuration: Optional[RunConfiguration] = None):
        self.configuration = configuration or RunConfiguration()

    def execute_changelog(self, changelog: Changelog, tags: Tags = ()) -> ChangeLogReport:
        """
        Run one changelog.

        Returns:
            The (empty) ChangeLogReport on success

        Raises:
            ExitError: If any selected changeset failed
            ConnectivityError: If the persist engine is unreachable
        """
        report = execute_changelog(changelog, self.configuration, _normalize_tags(tags))
        for error in report.errors:
            logger.error("%s", error)
        if not report.ok:
            raise ExitError([report])
        return report

    def execute_script(self, source: str, tags: Tags = (), origin: Optional[str] = None) -> ChangeLogReport:
        """Load changelog source text and run it."""
        return self.execute_changelog(load_changelog(source, origin=origin), tags)

    def execute_path(self, path: Union[str, os.PathLike], tags: Tags = ()) -> ChangeLogReport:
        """Load a changelog script from disk and run it."""
        return self.execute_changelog(load_changelog_file(path), tags)

    def execute_changelogs(
        self,
        root: Union[str, os.PathLike],
        pattern: str,
        tags: Tags = (),
    ) -> BatchReport:
        """
        Run every changelog file under root whose name matches pattern.

        Files run in path order. With failfast the first failing changelog
        ends the batch; otherwise every changelog runs and the failures are
        raised together at the end.

        Raises:
            ExitError: If root is not a directory, or any changelog failed
        """
        root_path = _normalize_path(root)
        if not root_path.is_dir():
            logger.error("%s is not a directory.", root_path)
            raise ExitError(message=f"{root_path} is not a directory")

        tag_list = _normalize_tags(tags)
        paths = discover_changelogs(root_path, pattern)
        logger.info("Found %d changelog(s) under %s matching %r", len(paths), root_path, pattern)

        reports: List[ChangeLogReport] = []
        failed: List[ChangeLogReport] = []
        for path in paths:
            try:
                reports.append(self.execute_path(path, tag_list))
            except ExitError as e:
                reports.extend(e.reports)
                failed.extend(e.reports)
                if self.configuration.failfast:
                    raise
        if failed:
            raise ExitError(failed)
        return BatchReport(reports=tuple(reports))
