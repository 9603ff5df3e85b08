"""Snapshot listing and restore operations."""

from pathlib import Path
from typing import List, Optional, Union

from resticbackup.backup import BatchSummary, NotFoundError, RunResult
from resticbackup.logger import (
    log_attempt,
    log_failure,
    log_info,
    log_size,
    log_success,
    log_tool_output,
)
from resticbackup.runner import ExternalToolError, ToolResult
from resticbackup.session import Session
from resticbackup.stats import RestoreStats, parse_restore_output, parse_snapshot_ids


# Snapshots hold absolute paths, so --target / restores them in place
ORIGINAL_LOCATION = "/"


class RestoreManager:
    """
    Lists snapshots and restores them with ``restic restore``.
    """

    def __init__(self, session: Session):
        self.session = session

    def list_snapshots(self, tag: Optional[str] = None) -> ToolResult:
        """
        Print the repository's snapshots, optionally filtered by tag.
        """
        logger = self.session.logger
        suffix = f" for tag: {tag}" if tag else ""
        log_attempt(logger, f"Listing snapshots{suffix}")

        args: List[str] = ["--tag", tag] if tag else []
        result = self.session.runner.run("snapshots", args, echo=True)
        if not result.ok:
            log_failure(logger, f"Failed to list snapshots{suffix}")
        return result

    def restore_snapshot(
        self,
        snapshot_id: str,
        path: Optional[Union[str, Path]] = None,
        tag: Optional[str] = None,
    ) -> RestoreStats:
        """
        Restore one snapshot.

        Args:
            snapshot_id: Snapshot ID (short or full) or "latest"
            path: Restore destination passed as --target (omitted when None)
            tag: Only restore if the snapshot carries this tag

        Returns:
            RestoreStats with restored file count and size

        Raises:
            ExternalToolError: If restic exits non-zero
        """
        logger = self.session.logger
        tag_note = f" (tag: {tag})" if tag else ""
        log_attempt(logger, f"Restoring snapshot {snapshot_id}{tag_note}")

        args: List[str] = [snapshot_id]
        if path:
            args.extend(["--target", str(path)])
            log_info(logger, f"Restore destination: {path}")
        if tag:
            args.extend(["--tag", tag])

        result = self.session.runner.run("restore", args, echo=True)
        if not result.ok:
            log_tool_output(logger, result.output)
            log_failure(logger, f"Restore failed for snapshot {snapshot_id}")
            result.raise_for_status(f"Restore failed for snapshot {snapshot_id}")

        stats = parse_restore_output(result.output)
        for warning in stats.warnings:
            logger.debug(f"Extraction warning: {warning}")

        log_success(logger, f"Restore completed for snapshot {snapshot_id}")
        log_size(
            logger,
            f"Files restored: {stats.files_restored}, Size: {stats.size_restored}",
        )
        return stats

    def resolve_latest(self, tag: str) -> str:
        """
        Return the ID of the first snapshot listed for ``tag``.

        Raises:
            NotFoundError: If no snapshot carries the tag
            ExternalToolError: If the snapshot query fails
        """
        logger = self.session.logger
        result = self.session.runner.run("snapshots", ["--tag", tag, "--json"])
        if not result.ok:
            log_tool_output(logger, result.output)
            log_failure(logger, f"Failed to query snapshots for tag: {tag}")
            result.raise_for_status(f"Snapshot query failed for tag {tag}")

        snapshot_ids = parse_snapshot_ids(result.output)
        if not snapshot_ids:
            log_failure(logger, f"No snapshots found for tag: {tag}")
            raise NotFoundError(f"No snapshots found for tag: {tag}")
        return snapshot_ids[0]

    def restore_latest(
        self,
        tag: str,
        path: Optional[Union[str, Path]] = None,
    ) -> RestoreStats:
        """
        Restore the latest snapshot carrying ``tag``.

        Raises:
            NotFoundError: If no snapshot carries the tag (nothing restored)
            ExternalToolError: If the query or the restore fails
        """
        log_attempt(self.session.logger, f"Restoring latest snapshot for tag: {tag}")
        snapshot_id = self.resolve_latest(tag)
        return self.restore_snapshot(snapshot_id, path, tag)

    def restore_all(self, base_path: Optional[Union[str, Path]] = None) -> BatchSummary:
        """
        Restore the latest snapshot of every configured target, in order.

        Args:
            base_path: Shared destination; None or "/" restores each target
                to its original location (restic --target /)

        Returns:
            BatchSummary with one result per target
        """
        logger = self.session.logger
        base = str(base_path) if base_path else ORIGINAL_LOCATION
        log_attempt(logger, f"Starting full restore to: {base}")

        summary = BatchSummary()
        for target in self.session.config.targets:
            try:
                self.restore_latest(target.tag, base)
                summary.add(RunResult(target=target, success=True))
            except (NotFoundError, ExternalToolError) as e:
                summary.add(RunResult(target=target, success=False, error_message=str(e)))

        log_info(
            logger,
            f"Restore summary: {summary.success_count} successful, "
            f"{summary.failure_count} failed",
        )
        return summary
