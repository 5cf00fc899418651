"""runonce CLI: run changelogs and inspect execution records."""

import argparse
import json
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path

from runonce.api import Runner
from runonce.config import PersistConfig, RunConfiguration
from runonce.errors import ChangelogLoadError, ConnectivityError, ExitError, RunOnceError
from runonce.kernel.record import ExecutionRecord
from runonce.persist.file import FilePersistEngine

DEFAULT_STATE_DIR = Path(".runonce")
DEFAULT_PATTERN = r"changelog.*\.py"


def _build_parser() -> argparse.ArgumentParser:
    try:
        runonce_version = get_version("runonce")
    except PackageNotFoundError:
        runonce_version = "dev"

    parser = argparse.ArgumentParser(
        prog="runonce",
        description="runonce: apply changelogs exactly once, with drift detection"
    )
    parser.add_argument("--version", action="version", version=f"runonce {runonce_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--state-dir",
        type=Path,
        default=DEFAULT_STATE_DIR,
        help=f"Directory holding execution records (defaults to '{DEFAULT_STATE_DIR}')"
    )
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run a changelog file, or every matching changelog under a directory",
        parents=[parent_parser]
    )
    run_parser.add_argument(
        "target",
        type=Path,
        help="Changelog script, or directory of changelog scripts"
    )
    run_parser.add_argument(
        "--pattern",
        default=DEFAULT_PATTERN,
        help=f"Regex file names must fully match in directory mode (defaults to '{DEFAULT_PATTERN}')"
    )
    run_parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=[],
        help="Only run changesets carrying this tag (repeatable)"
    )
    run_parser.add_argument(
        "--no-failfast",
        dest="failfast",
        action="store_false",
        help="Keep running after a failed changeset or changelog"
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would run without locking or executing anything"
    )
    run_parser.add_argument(
        "--log-level",
        default="INFO",
        help="Console log level and minimum level of stored changeset logs"
    )

    # status command
    subparsers.add_parser(
        "status",
        help="List execution records",
        parents=[parent_parser]
    )

    # schema command
    subparsers.add_parser(
        "schema",
        help="Print the JSON schema of execution records"
    )
    return parser


def _run(args) -> None:
    try:
        persist_config = PersistConfig(level=args.log_level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    console_level = logging.ERROR if args.quiet else persist_config.level
    logging.basicConfig(level=console_level, format="%(levelname)s %(name)s: %(message)s")

    configuration = RunConfiguration(
        failfast=args.failfast,
        dry_run=args.dry_run,
        persist_engine=FilePersistEngine(args.state_dir, persist_config),
    )
    runner = Runner(configuration)
    try:
        if args.target.is_dir():
            runner.execute_changelogs(args.target, args.pattern, args.tags)
        else:
            runner.execute_path(args.target, args.tags)
    except ExitError as e:
        if not args.quiet:
            print(f"[FAILED] {e}")
            for error in e.errors:
                print(f"  {error.change_set_id}: {error.cause!r}")
        sys.exit(1)
    except (ChangelogLoadError, ConnectivityError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except RunOnceError as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        sys.exit(1)

    if not args.quiet:
        print("[OK] Run complete" + (" (dry run)" if args.dry_run else ""))
    sys.exit(0)


def _status(args) -> None:
    engine = FilePersistEngine(args.state_dir)
    records = engine.records()
    if not args.quiet:
        for record in records:
            print(f"{record.status.value:<8} {record.status_date or record.lock_date}  {record.change_set_id}  ({record.author})")
        print(f"{len(records)} record(s) in {args.state_dir}")
    sys.exit(0)


def _schema(args) -> None:
    print(json.dumps(ExecutionRecord.model_json_schema(), indent=2, ensure_ascii=False))
    sys.exit(0)


def main():
    """Main CLI entry point for runonce commands."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "run":
        _run(args)
    elif args.command == "status":
        _status(args)
    elif args.command == "schema":
        _schema(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
