"""resticbackup - Configured backups, restores and pruning with restic."""

__version__ = "0.1.0"

from resticbackup.config import (
    BackupTarget,
    Configuration,
    ConfigurationError,
    RetentionPolicy,
    ValidationError,
    format_config,
    parse_config,
    parse_config_string,
)
from resticbackup.logger import (
    LoggingError,
    get_logger,
    rotate_log,
    setup_logging,
)
from resticbackup.runner import (
    ExternalToolError,
    ResticRunner,
    ToolResult,
)
from resticbackup.stats import (
    BackupStats,
    ExtractionWarning,
    RestoreStats,
    format_bytes,
    parse_backup_output,
    parse_restore_output,
    parse_snapshot_ids,
)
from resticbackup.session import Session
from resticbackup.signal_handler import SignalHandler
from resticbackup.retention import RetentionManager, RetentionResult
from resticbackup.backup import (
    BackupManager,
    BatchSummary,
    NotFoundError,
    RunResult,
    EXIT_SUCCESS,
    EXIT_FAILURE,
)
from resticbackup.restore import RestoreManager

__all__ = [
    "BackupTarget",
    "Configuration",
    "ConfigurationError",
    "RetentionPolicy",
    "ValidationError",
    "format_config",
    "parse_config",
    "parse_config_string",
    "LoggingError",
    "get_logger",
    "rotate_log",
    "setup_logging",
    "ExternalToolError",
    "ResticRunner",
    "ToolResult",
    "BackupStats",
    "ExtractionWarning",
    "RestoreStats",
    "format_bytes",
    "parse_backup_output",
    "parse_restore_output",
    "parse_snapshot_ids",
    "Session",
    "SignalHandler",
    "RetentionManager",
    "RetentionResult",
    "BackupManager",
    "BatchSummary",
    "NotFoundError",
    "RunResult",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "RestoreManager",
]
