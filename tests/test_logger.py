"""Tests for the logger module."""

import io
import logging
import re
import tempfile
from pathlib import Path

import pytest
from hypothesis import given
from hypothesis import strategies as st

from resticbackup.logger import (
    COLOR_BLUE,
    COLOR_CYAN,
    COLOR_GREEN,
    COLOR_RED,
    COLOR_RESET,
    COLOR_YELLOW,
    FAILURE,
    LOGGER_NAME,
    SUCCESS,
    ColorFormatter,
    LoggingError,
    log_attempt,
    log_failure,
    log_info,
    log_size,
    log_success,
    log_tool_output,
    rotate_log,
    setup_logging,
)

from conftest import read_log_lines


LINE_PATTERN = re.compile(
    r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] \[(INFO|SUCCESS|FAILURE|DEBUG)\] .+$"
)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_handlers(self, log_file):
        logger = setup_logging(log_file, console_stream=io.StringIO())
        assert logger.name == LOGGER_NAME
        assert len(logger.handlers) == 2  # file, console

    def test_file_only(self, log_file):
        logger = setup_logging(log_file, console=False)
        assert len(logger.handlers) == 1

    def test_creates_log_directory(self, tmp_path, cleanup_logger):
        log_file = tmp_path / "nested" / "dir" / "test.log"
        setup_logging(log_file, console=False)
        assert log_file.parent.is_dir()

    def test_unwritable_directory_raises(self, tmp_path, cleanup_logger):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(LoggingError):
            setup_logging(blocker / "sub" / "test.log", console=False)

    def test_repeated_setup_does_not_duplicate_handlers(self, log_file):
        setup_logging(log_file, console=False)
        logger = setup_logging(log_file, console=False)
        assert len(logger.handlers) == 1


class TestLogLines:
    """Tests for the on-disk line format and level helpers."""

    def test_line_format(self, log_file):
        logger = setup_logging(log_file, console=False)

        log_info(logger, "Checking dependencies...")
        log_attempt(logger, "Backing up documents: /home/user/documents")
        log_success(logger, "Backup completed for documents")
        log_failure(logger, "Backup failed for pictures: /home/user/pictures")
        log_size(logger, "Data added: 1.5KiB")

        lines = read_log_lines(log_file)
        assert len(lines) == 5
        for line in lines:
            assert LINE_PATTERN.match(line), line

        assert lines[0].endswith("[INFO] Checking dependencies...")
        assert lines[1].endswith("[INFO] ATTEMPT: Backing up documents: /home/user/documents")
        assert lines[2].endswith("[SUCCESS] Backup completed for documents")
        assert lines[3].endswith("[FAILURE] Backup failed for pictures: /home/user/pictures")
        assert lines[4].endswith("[INFO] SIZE: Data added: 1.5KiB")

    def test_log_file_has_no_color(self, log_file):
        logger = setup_logging(log_file, console_stream=io.StringIO(), use_color=True)
        log_success(logger, "done")

        content = "\n".join(read_log_lines(log_file))
        assert "\033[" not in content

    def test_tool_output_only_in_file(self, log_file):
        console = io.StringIO()
        logger = setup_logging(log_file, console_stream=console)

        log_tool_output(logger, "removed snapshot abc\nremoved snapshot def\n")

        lines = read_log_lines(log_file)
        assert lines[0].endswith("[DEBUG] restic: removed snapshot abc")
        assert lines[1].endswith("[DEBUG] restic: removed snapshot def")
        assert console.getvalue() == ""

    def test_console_mirrors_without_color_when_not_tty(self, log_file):
        console = io.StringIO()
        logger = setup_logging(log_file, console_stream=console)
        log_success(logger, "mirrored")

        assert "[SUCCESS] mirrored" in console.getvalue()
        assert "\033[" not in console.getvalue()


def _record(level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord(LOGGER_NAME, level, __file__, 1, message, None, None)


class TestColorFormatter:
    """Tests for console colouring."""

    @pytest.mark.parametrize("level,message,color", [
        (SUCCESS, "ok", COLOR_GREEN),
        (FAILURE, "bad", COLOR_RED),
        (logging.INFO, "ATTEMPT: Backing up x", COLOR_CYAN),
        (logging.INFO, "SIZE: Data added: 1B", COLOR_YELLOW),
        (logging.INFO, "Backup summary: 1 successful, 0 failed", COLOR_BLUE),
    ])
    def test_colors(self, level, message, color):
        line = ColorFormatter(use_color=True).format(_record(level, message))
        assert line.startswith(color)
        assert line.endswith(COLOR_RESET)
        assert message in line

    def test_plain_when_disabled(self):
        line = ColorFormatter(use_color=False).format(_record(SUCCESS, "ok"))
        assert "\033[" not in line
        assert line.endswith("[SUCCESS] ok")


def _fill(path: Path, size: int) -> None:
    path.write_bytes(b"x" * size)


class TestRotateLog:
    """Tests for pre-run log rotation."""

    def test_no_rotation_below_threshold(self, tmp_path):
        log_file = tmp_path / "r.log"
        _fill(log_file, 100)

        assert rotate_log(log_file, max_bytes=100) is False
        assert log_file.exists()
        assert not (tmp_path / "r.log.1").exists()

    def test_missing_log_is_not_rotated(self, tmp_path):
        assert rotate_log(tmp_path / "missing.log", max_bytes=1) is False

    def test_rotation_shifts_chain(self, tmp_path):
        log_file = tmp_path / "r.log"
        _fill(log_file, 101)
        for i in range(1, 11):
            (tmp_path / f"r.log.{i}").write_text(f"backup {i}")

        assert rotate_log(log_file, max_bytes=100) is True

        assert not log_file.exists()
        assert (tmp_path / "r.log.1").read_bytes() == b"x" * 101
        for i in range(2, 11):
            assert (tmp_path / f"r.log.{i}").read_text() == f"backup {i - 1}"
        # the previous 10th backup was evicted
        assert not (tmp_path / "r.log.11").exists()

    def test_rotation_with_partial_chain(self, tmp_path):
        log_file = tmp_path / "r.log"
        _fill(log_file, 11)
        (tmp_path / "r.log.1").write_text("older")

        rotate_log(log_file, max_bytes=10)

        assert (tmp_path / "r.log.1").read_bytes() == b"x" * 11
        assert (tmp_path / "r.log.2").read_text() == "older"
        assert not (tmp_path / "r.log.3").exists()

    def test_rotation_failure_is_best_effort(self, tmp_path, monkeypatch):
        log_file = tmp_path / "r.log"
        _fill(log_file, 11)

        def fail(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr("logging.handlers.RotatingFileHandler.doRollover", fail)

        assert rotate_log(log_file, max_bytes=10) is False
        assert log_file.exists()

    @given(existing=st.integers(min_value=0, max_value=10))
    def test_chain_never_exceeds_ten(self, existing):
        with tempfile.TemporaryDirectory() as tmpdir:
            directory = Path(tmpdir)
            log_file = directory / "r.log"
            _fill(log_file, 20)
            for i in range(1, existing + 1):
                (directory / f"r.log.{i}").write_text(str(i))

            rotate_log(log_file, max_bytes=10, backup_count=10)

            numbers = {
                int(p.name.rsplit(".", 1)[1])
                for p in directory.iterdir()
                if p.name != "r.log"
            }
            assert numbers == set(range(1, min(existing + 1, 10) + 1))
            assert (directory / "r.log.1").read_bytes() == b"x" * 20
