"""Command-line interface for restic-backup.

Global options come before the command; everything after the command is
passed to it positionally:

- backup <target|all> [tag]: Back up one target or all targets
- list [tag]: List snapshots
- restore <snapshot> [path]: Restore a snapshot
- restore-latest <tag> [path]: Restore the latest snapshot for a tag
- restore-all [path]: Restore every target
- prune: Apply the retention policy
- check: Check repository integrity
- config: Show the configuration (no repository access needed)
- init: Initialize the repository (no repository access needed)
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from resticbackup.backup import (
    ALL_TARGETS,
    BackupManager,
    NotFoundError,
    check_integrity,
    check_repository,
    init_repository,
)
from resticbackup.config import (
    ConfigurationError,
    ValidationError,
    format_config,
    parse_config,
    resolve_config_path,
    resolve_log_path,
)
from resticbackup.logger import (
    LoggingError,
    log_failure,
    log_info,
    log_success,
    rotate_log,
    setup_logging,
)
from resticbackup.restore import RestoreManager
from resticbackup.retention import RetentionManager
from resticbackup.runner import ExternalToolError, ResticRunner
from resticbackup.session import Session
from resticbackup.signal_handler import SignalHandler


EXIT_SUCCESS = 0
EXIT_FAILURE = 1

PROG = "restic-backup"

USAGE = f"""Usage: {PROG} [OPTIONS] COMMAND

A backup tool built on restic.

COMMANDS:
    backup <target|all> [tag]    Backup a specific target or all targets
    list [tag]                   List all snapshots or snapshots for a tag
    restore <snapshot> [path]    Restore a specific snapshot to optional path
    restore-latest <tag> [path]  Restore latest snapshot for tag to optional path
    restore-all [path]           Restore all targets to optional base path
    prune                        Manually apply retention policy and prune snapshots
    check                        Check repository integrity
    config                       Show current configuration (with masked password)
    init                         Initialize the configured repository

OPTIONS:
    -c, --config FILE            Use specified config file (default: ~/.restic/restic-backup.conf)
    -l, --log FILE               Use specified log file (default: ~/.restic/restic-backup.log)
    -h, --help                   Show detailed help

ENVIRONMENT:
    CONFIG_FILE                  Override default config file location
    LOG_FILE                     Override default log file location

Examples:
    {PROG} backup all
    {PROG} backup /home/user/documents
    {PROG} list
    {PROG} restore abc123 /tmp/restore
    {PROG} restore-latest documents /tmp/restore
    {PROG} restore-all /mnt/recovery
"""

HELP = """
CONFIGURATION FILE FORMAT:
    Shell variable assignments, one KEY=value per line. Values may be
    quoted; $VAR, ${VAR} and ~ are expanded, and "export" is allowed.

    RESTIC_REPOSITORY       Repository location (local path, sftp:, s3:, etc.)
    RESTIC_PASSWORD         Repository password (or use RESTIC_PASSWORD_FILE)
    RESTIC_PASSWORD_FILE    Path to file containing repository password
    BACKUP_TARGETS          Colon-separated list of directories to backup

    Optional retention policy (for automatic pruning):
    AUTO_PRUNE              Enable/disable automatic pruning after backup (default: true)
    KEEP_LAST               Keep last N snapshots
    KEEP_HOURLY             Keep last N hourly snapshots
    KEEP_DAILY              Keep last N daily snapshots
    KEEP_WEEKLY             Keep last N weekly snapshots
    KEEP_MONTHLY            Keep last N monthly snapshots
    KEEP_YEARLY             Keep last N yearly snapshots

    Default location: ~/.restic/restic-backup.conf
    Fallback: ./restic-backup.conf

    Each target is tagged with its directory name, so two targets may not
    share a directory name.

Example config file:
    RESTIC_REPOSITORY="/backup/restic-repo"
    RESTIC_PASSWORD="my-secure-password"
    BACKUP_TARGETS="/home/user/documents:/home/user/pictures:/etc"

    # Retention policy
    KEEP_LAST=7
    KEEP_DAILY=14
    KEEP_WEEKLY=8
    KEEP_MONTHLY=12
    KEEP_YEARLY=3

LOGGING:
    Default log location: ~/.restic/restic-backup.log
    All operations are logged to the log file with timestamps.
    Log entries include attempt status, success/failure, and size information.

    Log Rotation:
    - Logs are rotated before a command runs once they exceed 10MB
    - Keeps last 10 rotated logs (*.log.1 through *.log.10)
    - Oldest logs are automatically removed

For more information, visit: https://restic.readthedocs.io/
"""


class UsageError(Exception):
    """Raised for unknown commands and missing or extra arguments."""
    pass


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports errors instead of exiting with status 2."""

    def error(self, message: str) -> None:
        raise UsageError(message)


def create_parser() -> argparse.ArgumentParser:
    """
    Create the argument parser.

    Only leading options are parsed; the first positional is the command
    and the rest are kept verbatim for it.
    """
    parser = _ArgumentParser(prog=PROG, add_help=False)
    parser.add_argument(
        '--config', '-c',
        type=Path,
        metavar='FILE',
        help='Path to config file',
    )
    parser.add_argument(
        '--log', '-l',
        type=Path,
        metavar='FILE',
        help='Path to log file',
    )
    parser.add_argument(
        '--help', '-h',
        action='store_true',
        help='Show detailed help',
    )
    parser.add_argument('command', nargs='?')
    parser.add_argument('args', nargs=argparse.REMAINDER)
    return parser


def cmd_backup(session: Session, args: List[str]) -> int:
    tag = args[1] if len(args) > 1 else None
    summary = BackupManager(session).backup(args[0], tag)
    return summary.exit_code


def cmd_list(session: Session, args: List[str]) -> int:
    result = RestoreManager(session).list_snapshots(args[0] if args else None)
    return EXIT_SUCCESS if result.ok else EXIT_FAILURE


def cmd_restore(session: Session, args: List[str]) -> int:
    path = args[1] if len(args) > 1 else None
    RestoreManager(session).restore_snapshot(args[0], path)
    return EXIT_SUCCESS


def cmd_restore_latest(session: Session, args: List[str]) -> int:
    path = args[1] if len(args) > 1 else None
    RestoreManager(session).restore_latest(args[0], path)
    return EXIT_SUCCESS


def cmd_restore_all(session: Session, args: List[str]) -> int:
    summary = RestoreManager(session).restore_all(args[0] if args else None)
    return summary.exit_code


def cmd_prune(session: Session, args: List[str]) -> int:
    result = RetentionManager(session).prune()
    return EXIT_SUCCESS if result.success else EXIT_FAILURE


def cmd_check(session: Session, args: List[str]) -> int:
    check_integrity(session)
    return EXIT_SUCCESS


def cmd_config(session: Session, args: List[str]) -> int:
    print(format_config(session.config, session.config_path, session.log_file))
    return EXIT_SUCCESS


def cmd_init(session: Session, args: List[str]) -> int:
    init_repository(session)
    return EXIT_SUCCESS


@dataclass(frozen=True)
class Command:
    """A CLI command: its handler, arity and whether it needs the repository."""
    handler: Callable[[Session, List[str]], int]
    min_args: int = 0
    max_args: int = 0
    missing_message: str = ""
    needs_repository: bool = True


COMMANDS: Dict[str, Command] = {
    'backup': Command(cmd_backup, 1, 2, "backup requires a target or 'all'"),
    'list': Command(cmd_list, 0, 1),
    'restore': Command(cmd_restore, 1, 2, "restore requires a snapshot ID"),
    'restore-latest': Command(cmd_restore_latest, 1, 2, "restore-latest requires a tag"),
    'restore-all': Command(cmd_restore_all, 0, 1),
    'prune': Command(cmd_prune),
    'check': Command(cmd_check),
    'config': Command(cmd_config, needs_repository=False),
    'init': Command(cmd_init, needs_repository=False),
}


def validate_command(command: Optional[str], args: List[str]) -> Command:
    """
    Look up a command and check its positional argument count.

    Raises:
        UsageError: Unknown command, or missing/extra arguments
    """
    if command is None:
        raise UsageError("no command given")
    entry = COMMANDS.get(command)
    if entry is None:
        raise UsageError(f"unknown command '{command}'")
    if len(args) < entry.min_args:
        raise UsageError(entry.missing_message)
    if len(args) > entry.max_args:
        raise UsageError(f"too many arguments for '{command}'")
    if command == "backup" and args[0] == ALL_TARGETS and len(args) > 1:
        raise UsageError("backup all does not take a tag")
    return entry


def print_usage(error: Optional[str] = None) -> None:
    if error:
        print(f"Error: {error}", file=sys.stderr)
    print(USAGE)


def check_dependencies(logger: logging.Logger, runner: ResticRunner) -> None:
    """
    Make sure the restic binary the runner will execute can be found.

    Raises:
        ExternalToolError: If restic cannot be found
    """
    log_info(logger, "Checking dependencies...")
    try:
        runner.ensure_available()
    except ExternalToolError as e:
        log_failure(logger, str(e))
        raise

    log_success(logger, "All dependencies satisfied")


def prepare_session(
    command: Command,
    config_path: Path,
    log_file: Path,
    logger: logging.Logger,
    signal_handler: Optional[SignalHandler] = None,
) -> Session:
    """
    Load the configuration, check that restic is available and, unless
    the command works without one, verify the repository is reachable.

    Raises:
        ConfigurationError, ValidationError: Configuration problems
        ExternalToolError: restic missing or repository unreachable
    """
    log_info(logger, f"Loading configuration from {config_path}")
    config = parse_config(config_path)
    log_success(logger, "Configuration loaded successfully")

    runner = ResticRunner(config.restic_environment(), signal_handler=signal_handler)
    check_dependencies(logger, runner)

    session = Session.create(
        config,
        config_path=config_path,
        log_file=log_file,
        runner=runner,
        logger=logger,
    )

    if command.needs_repository:
        check_repository(session)

    return session


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for any failure or usage error)
    """
    parser = create_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        print_usage(str(e))
        return EXIT_FAILURE

    if args.help:
        print(USAGE + HELP)
        return EXIT_SUCCESS

    if args.command is None:
        print_usage()
        return EXIT_FAILURE

    try:
        command = validate_command(args.command, args.args)
    except UsageError as e:
        print_usage(str(e))
        return EXIT_FAILURE

    config_path = resolve_config_path(args.config)
    log_file = resolve_log_path(args.log)

    # Rotate logs before starting operations
    rotate_log(log_file)
    try:
        logger = setup_logging(log_file)
    except LoggingError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    with SignalHandler() as signal_handler:
        try:
            session = prepare_session(
                command,
                config_path,
                log_file,
                logger,
                signal_handler=signal_handler,
            )
            return command.handler(session, args.args)
        except (ConfigurationError, ValidationError) as e:
            log_failure(logger, str(e))
            return EXIT_FAILURE
        except (NotFoundError, ExternalToolError):
            # Already logged where it happened
            return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
