"""Pytest configuration and fixtures for resticbackup tests."""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest
from hypothesis import settings, Phase

from resticbackup.config import BackupTarget, Configuration, RetentionPolicy
from resticbackup.logger import LOGGER_NAME, setup_logging
from resticbackup.runner import ToolResult
from resticbackup.session import Session

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=10,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


Response = Union[ToolResult, Callable[[List[str]], ToolResult]]


class FakeRunner:
    """Stands in for ResticRunner and records every invocation."""

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses: Dict[str, Response] = responses or {}
        self.calls: List[Tuple[str, List[str]]] = []

    def run(self, subcommand: str, args=(), echo: bool = False) -> ToolResult:
        args = list(args)
        self.calls.append((subcommand, args))
        response = self.responses.get(subcommand, ToolResult(0, ""))
        if callable(response):
            return response(args)
        return response

    def ensure_available(self) -> str:
        return "/usr/bin/restic"

    def calls_for(self, subcommand: str) -> List[List[str]]:
        return [args for name, args in self.calls if name == subcommand]


def make_config(
    targets: List[Path],
    retention: Optional[RetentionPolicy] = None,
    auto_prune: bool = True,
) -> Configuration:
    return Configuration(
        repository="/srv/restic-repo",
        targets=[BackupTarget.from_path(str(t)) for t in targets],
        password="secret",
        auto_prune=auto_prune,
        retention=retention or RetentionPolicy(),
    )


def read_log_lines(log_file: Path) -> List[str]:
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    return log_file.read_text(encoding="utf-8").splitlines()


@pytest.fixture
def cleanup_logger():
    """Clean up logger handlers after each test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def log_file(tmp_path, cleanup_logger) -> Path:
    return tmp_path / "logs" / "restic-backup.log"


@pytest.fixture
def session_factory(tmp_path, log_file):
    """Build a Session around a FakeRunner with file-only logging."""

    def factory(config: Configuration, runner: Optional[FakeRunner] = None) -> Session:
        logger = setup_logging(log_file, console=False)
        return Session.create(
            config,
            config_path=tmp_path / "restic-backup.conf",
            log_file=log_file,
            runner=runner or FakeRunner(),
            logger=logger,
        )

    return factory
