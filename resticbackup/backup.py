"""Backup orchestration for restic-backup.

Runs ``restic backup`` for one target or for every configured target:

- Targets are processed strictly in configured order, one at a time
- A failing target never stops the remaining ones; it is counted
- After a full run the retention policy is applied once (AUTO_PRUNE)

Also holds the repository-level operations the CLI runs before and
alongside the backup commands (access check, integrity check, init).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from resticbackup.config import BackupTarget
from resticbackup.logger import (
    log_attempt,
    log_failure,
    log_info,
    log_size,
    log_success,
    log_tool_output,
)
from resticbackup.retention import RetentionManager, RetentionResult
from resticbackup.runner import ExternalToolError, ToolResult
from resticbackup.session import Session
from resticbackup.stats import format_bytes, parse_backup_output


EXIT_SUCCESS = 0
EXIT_FAILURE = 1

ALL_TARGETS = "all"


class NotFoundError(Exception):
    """Raised when a target directory or a snapshot does not exist."""
    pass


@dataclass
class RunResult:
    """Outcome of one target's backup or restore."""
    target: BackupTarget
    success: bool
    files_new: int = 0
    files_changed: int = 0
    files_unmodified: int = 0
    data_added: int = 0
    error_message: Optional[str] = None


@dataclass
class BatchSummary:
    """Aggregated results of a run over several targets."""
    results: List[RunResult] = field(default_factory=list)
    retention: Optional[RetentionResult] = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def exit_code(self) -> int:
        if self.failure_count > 0:
            return EXIT_FAILURE
        if self.retention is not None and not self.retention.success:
            return EXIT_FAILURE
        return EXIT_SUCCESS

    def add(self, result: RunResult) -> None:
        self.results.append(result)


class BackupManager:
    """
    Backs up configured targets with ``restic backup``.
    """

    def __init__(self, session: Session):
        self.session = session

    def resolve_target(self, name: str, tag: Optional[str] = None) -> BackupTarget:
        """
        Map a CLI argument to a target.

        A configured tag selects that target; anything else is taken as a
        directory path tagged with its base name (or ``tag``).
        """
        if tag is None:
            configured = self.session.config.find_target(name)
            if configured is not None:
                return configured
        return BackupTarget.from_path(name, tag)

    def backup(self, target_or_all: str, tag: Optional[str] = None) -> BatchSummary:
        """
        Back up one target, or every target when given "all".

        Returns:
            BatchSummary; its exit_code is 1 if anything failed
        """
        if target_or_all == ALL_TARGETS:
            return self.backup_all()

        target = self.resolve_target(target_or_all, tag)
        summary = BatchSummary()
        summary.add(self._backup_isolated(target))
        return summary

    def backup_single(self, path: Path, tag: Optional[str] = None) -> RunResult:
        """
        Back up a single directory.

        Args:
            path: Directory to back up
            tag: Snapshot tag (default: the directory's base name)

        Returns:
            RunResult for the successful backup

        Raises:
            NotFoundError: If path is not a directory
            ExternalToolError: If restic exits non-zero
        """
        logger = self.session.logger
        target = BackupTarget.from_path(str(path), tag)

        log_attempt(logger, f"Backing up {target.tag}: {target.path}")

        if not target.path.is_dir():
            log_failure(logger, f"Directory does not exist: {target.path}")
            raise NotFoundError(f"Directory does not exist: {target.path}")

        result = self.session.runner.run(
            "backup",
            [str(target.path), "--tag", target.tag, "--json"],
        )

        if not result.ok:
            log_tool_output(logger, result.output)
            log_failure(logger, f"Backup failed for {target.tag}: {target.path}")
            result.raise_for_status(f"Backup failed for {target.tag}")

        stats = parse_backup_output(result.output)
        for warning in stats.warnings:
            logger.debug(f"Extraction warning: {warning}")

        log_success(logger, f"Backup completed for {target.tag}")
        log_size(
            logger,
            f"Files: {stats.total_files} (new: {stats.files_new}, "
            f"changed: {stats.files_changed}, unmodified: {stats.files_unmodified})",
        )
        log_size(logger, f"Data added: {format_bytes(stats.data_added)}")

        return RunResult(
            target=target,
            success=True,
            files_new=stats.files_new,
            files_changed=stats.files_changed,
            files_unmodified=stats.files_unmodified,
            data_added=stats.data_added,
        )

    def _backup_isolated(self, target: BackupTarget) -> RunResult:
        """Back up one target, turning its failure into a RunResult."""
        try:
            return self.backup_single(target.path, target.tag)
        except (NotFoundError, ExternalToolError) as e:
            return RunResult(target=target, success=False, error_message=str(e))

    def backup_all(self) -> BatchSummary:
        """
        Back up every configured target in order, then apply retention.

        Returns:
            BatchSummary with per-target results and the retention result
        """
        logger = self.session.logger
        log_attempt(logger, "Starting backup of all configured targets")

        summary = BatchSummary()
        for target in self.session.config.targets:
            summary.add(self._backup_isolated(target))

        log_info(
            logger,
            f"Backup summary: {summary.success_count} successful, "
            f"{summary.failure_count} failed",
        )

        if self.session.config.auto_prune:
            summary.retention = RetentionManager(self.session).prune()

        return summary


def check_repository(session: Session) -> None:
    """
    Verify the repository can be opened with the configured credentials.

    Raises:
        ExternalToolError: If the repository cannot be accessed
    """
    logger = session.logger
    log_info(logger, "Checking repository access...")

    result = session.runner.run("snapshots", ["--quiet"])
    if not result.ok:
        log_tool_output(logger, result.output)
        log_failure(logger, f"Cannot access repository: {session.config.repository}")
        result.raise_for_status(f"Cannot access repository: {session.config.repository}")

    log_success(logger, "Repository access confirmed")


def check_integrity(session: Session) -> ToolResult:
    """
    Run ``restic check``. Any failure is fatal for the calling command.

    Raises:
        ExternalToolError: If the check fails
    """
    logger = session.logger
    log_attempt(logger, "Checking repository integrity")

    result = session.runner.run("check", echo=True)
    log_tool_output(logger, result.output)
    if not result.ok:
        log_failure(logger, "Repository check failed")
        result.raise_for_status("Repository check failed")

    log_success(logger, "Repository check passed")
    return result


def init_repository(session: Session) -> ToolResult:
    """
    Create the repository with ``restic init``.

    Raises:
        ExternalToolError: If initialization fails
    """
    logger = session.logger
    log_attempt(logger, f"Initializing repository: {session.config.repository}")

    result = session.runner.run("init", echo=True)
    log_tool_output(logger, result.output)
    if not result.ok:
        log_failure(logger, f"Failed to initialize repository: {session.config.repository}")
        result.raise_for_status("Repository initialization failed")

    log_success(logger, "Repository initialized")
    return result
