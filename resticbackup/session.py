"""Per-invocation state shared by all operations."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

from resticbackup.config import Configuration
from resticbackup.logger import get_logger
from resticbackup.runner import ResticRunner
from resticbackup.signal_handler import SignalHandler


@dataclass
class Session:
    """
    Everything one command needs: the loaded configuration, the paths it
    was resolved from, the restic runner and the logger.

    A session is built once by the CLI and passed to every operation.
    """
    config: Configuration
    config_path: Path
    log_file: Path
    runner: ResticRunner
    logger: logging.Logger

    @classmethod
    def create(
        cls,
        config: Configuration,
        config_path: Path,
        log_file: Path,
        runner: Optional[ResticRunner] = None,
        logger: Optional[logging.Logger] = None,
        signal_handler: Optional[SignalHandler] = None,
    ) -> "Session":
        if runner is None:
            runner = ResticRunner(
                config.restic_environment(),
                signal_handler=signal_handler,
            )
        return cls(
            config=config,
            config_path=config_path,
            log_file=log_file,
            runner=runner,
            logger=logger or get_logger(),
        )
