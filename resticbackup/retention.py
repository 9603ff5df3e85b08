"""Retention policy for restic-backup.

Applies the configured keep-counts with a single
``restic forget <keep flags> --prune`` call. Which snapshots survive is
decided by restic; this module only builds the arguments and reports the
outcome.
"""

from dataclasses import dataclass
from typing import List, Optional

from resticbackup.logger import (
    log_attempt,
    log_failure,
    log_info,
    log_success,
    log_tool_output,
)
from resticbackup.runner import ToolResult
from resticbackup.session import Session


@dataclass
class RetentionResult:
    """Result of applying retention policy."""
    success: bool
    skipped: bool
    args: List[str]
    tool_result: Optional[ToolResult] = None


class RetentionManager:
    """
    Applies the retention policy of a session's configuration.
    """

    def __init__(self, session: Session):
        self.session = session
        self.policy = session.config.retention

    def build_forget_args(self) -> List[str]:
        """Keep flags followed by --prune, or [] when no policy is set."""
        keep_args = self.policy.to_restic_args()
        if not keep_args:
            return []
        return [*keep_args, "--prune"]

    def prune(self) -> RetentionResult:
        """
        Forget snapshots outside the policy and remove their data.

        Skipped, and reported as success, when no retention class has a
        positive count. There is no partial-failure recovery: a non-zero
        exit marks the whole step as failed.

        Returns:
            RetentionResult describing what happened
        """
        logger = self.session.logger
        log_attempt(logger, "Applying retention policy and pruning old snapshots")

        args = self.build_forget_args()
        if not args:
            log_info(logger, "No retention policy defined, skipping prune")
            return RetentionResult(success=True, skipped=True, args=[])

        result = self.session.runner.run("forget", args)
        log_tool_output(logger, result.output)

        if result.ok:
            log_success(logger, "Retention policy applied and old snapshots pruned")
        else:
            log_failure(logger, "Failed to prune snapshots")

        return RetentionResult(
            success=result.ok,
            skipped=False,
            args=args,
            tool_result=result,
        )
