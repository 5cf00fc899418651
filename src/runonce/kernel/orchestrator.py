"""Changeset execution: the run-once protocol.

For each selected changeset, in order:
- OK with the same fingerprint: skipped, nothing locked or persisted.
- OK with another fingerprint: IntegrityError, actions never run.
- Absent or KO: locked, actions run in order under log capture until the
  first failure, then unlocked with the terminal status, fingerprint and log.
  A changeset another run completed between query and lock is treated as
  OK: skipped, or IntegrityError on a different fingerprint.

With failfast, the first ChangeSetError ends the run; the remaining
changesets are never queried, locked or persisted.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from runonce.codes import Status
from runonce.config import RunConfiguration
from runonce.errors import ChangeSetError, IntegrityError, LockConflictError
from runonce.kernel.fingerprint import CanonicalizationError
from runonce.kernel.log_capture import LogCapture
from runonce.kernel.model import ChangeSet, Changelog
from runonce.kernel.record import StoredStatus
from runonce.kernel.report import ChangeLogReport
from runonce.persist.base import PersistEngine

logger = logging.getLogger(__name__)


def _run_actions(change_set: ChangeSet) -> Optional[Exception]:
    """Run actions in declared order; return the first failure, if any."""
    total = len(change_set.actions)
    for index, action in enumerate(change_set.actions, start=1):
        name = getattr(action, "name", None) or type(action).__name__
        logger.debug("Action %d/%d (%s) of changeset %s", index, total, name, change_set.identifier)
        try:
            action.execute()
        except Exception as e:
            logger.exception(
                "Action %d/%d (%s) of changeset %s failed", index, total, name, change_set.identifier
            )
            return e
    return None


def _check_applied(change_set_id: str, stored: StoredStatus, fingerprint: str) -> Optional[ChangeSetError]:
    """Skip an OK changeset, or report drift when its actions changed."""
    if stored.fingerprint == fingerprint:
        logger.info("Changeset %s already applied, skipping", change_set_id)
        return None
    error = IntegrityError(change_set_id, stored.fingerprint, fingerprint)
    logger.error("%s", error)
    return ChangeSetError(change_set_id, error)


def execute_change_set(
    change_set: ChangeSet,
    persist_engine: PersistEngine,
    log_capture: LogCapture,
    dry_run: bool = False,
) -> Optional[ChangeSetError]:
    """Apply one changeset at most once. Returns its error, or None."""
    change_set_id = change_set.identifier
    try:
        fingerprint = change_set.fingerprint
    except CanonicalizationError as e:
        logger.error("Cannot fingerprint changeset %s: %s", change_set_id, e)
        return ChangeSetError(change_set_id, e)

    stored = persist_engine.query_status(change_set_id)
    if stored is not None and stored.status is Status.OK:
        return _check_applied(change_set_id, stored, fingerprint)

    if dry_run:
        logger.info(
            "Dry run: changeset %s would run (%s)",
            change_set_id, "retry after KO" if stored is not None else "never applied",
        )
        return None

    try:
        completed = persist_engine.lock(change_set_id, change_set.author)
    except LockConflictError as e:
        logger.error("%s", e)
        return ChangeSetError(change_set_id, e)
    if completed is not None:
        logger.info("Changeset %s was completed by another run before it was locked", change_set_id)
        return _check_applied(change_set_id, completed, fingerprint)

    with log_capture.capture(change_set_id) as captured:
        logger.info("Running changeset %s (%d action(s))", change_set_id, len(change_set.actions))
        failure = _run_actions(change_set)

    status = Status.OK if failure is None else Status.KO
    store_logs = persist_engine.configuration.store_logs_for(failure is None)
    persist_engine.unlock(change_set_id, status, fingerprint, captured.lines if store_logs else [])
    logger.info("Changeset %s: %s", change_set_id, status.value)

    if failure is not None:
        return ChangeSetError(change_set_id, failure)
    return None


def execute(
    change_sets: Sequence[ChangeSet],
    persist_engine: PersistEngine,
    failfast: bool = True,
    changelog_id: str = "",
    dry_run: bool = False,
    log_capture: Optional[LogCapture] = None,
) -> ChangeLogReport:
    """
    Run the selected changesets strictly in order.

    Precondition: persist_engine.check_connection() has succeeded.

    Args:
        change_sets: Changesets to run, already tag-filtered
        persist_engine: Backend holding execution records and locks
        failfast: Stop at the first ChangeSetError
        changelog_id: Id reported in the ChangeLogReport
        dry_run: Decide but never lock, execute or persist
        log_capture: Log sink; one is created from the engine's configuration if omitted

    Returns:
        ChangeLogReport listing every ChangeSetError, in order
    """
    capture = log_capture or LogCapture(persist_engine.configuration)
    errors: List[ChangeSetError] = []
    for position, change_set in enumerate(change_sets):
        error = execute_change_set(change_set, persist_engine, capture, dry_run=dry_run)
        if error is None:
            continue
        errors.append(error)
        if failfast:
            remaining = len(change_sets) - position - 1
            if remaining:
                logger.error("Failfast: %d remaining changeset(s) not run", remaining)
            break
    return ChangeLogReport(changelog_id=changelog_id, errors=tuple(errors))


def execute_changelog(
    changelog: Changelog,
    configuration: RunConfiguration,
    tags: Iterable[str] = (),
) -> ChangeLogReport:
    """Check connectivity, select changesets by tag, and execute them."""
    persist_engine = configuration.persist_engine
    persist_engine.check_connection()
    selected = changelog.matched_change_sets(tags)
    logger.info(
        "Changelog %s: %d of %d changeset(s) selected",
        changelog.id or "<anonymous>", len(selected), len(changelog.change_sets),
    )
    return execute(
        selected,
        persist_engine,
        failfast=configuration.failfast,
        changelog_id=changelog.id,
        dry_run=configuration.dry_run,
    )
