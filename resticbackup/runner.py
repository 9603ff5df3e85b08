"""Process invoker for the restic binary.

ResticRunner executes ``restic <subcommand> <args>`` with stdout and stderr
merged, and returns the exit status together with the captured text. A
non-zero exit is a normal result, not an exception: callers decide what a
failure means.
"""

from dataclasses import dataclass
from typing import IO, Mapping, Optional, Sequence
import logging
import shutil
import subprocess
import sys
import tempfile

from resticbackup.signal_handler import SignalHandler


logger = logging.getLogger(__name__)

RESTIC_BINARY = "restic"

# Prefix for the scoped capture files
CAPTURE_PREFIX = "restic-backup_"


class ExternalToolError(Exception):
    """Raised when restic is missing or exits with a non-zero status."""

    def __init__(self, message: str, exit_status: Optional[int] = None):
        super().__init__(message)
        self.exit_status = exit_status


@dataclass
class ToolResult:
    """Outcome of one restic invocation."""
    exit_status: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def raise_for_status(self, message: str) -> None:
        """Raise ExternalToolError if the invocation failed."""
        if not self.ok:
            raise ExternalToolError(
                f"{message} (exit status {self.exit_status})",
                exit_status=self.exit_status,
            )


def locate_restic(binary: str = RESTIC_BINARY, path: Optional[str] = None) -> str:
    """
    Find the restic executable on PATH.

    Raises:
        ExternalToolError: If restic is not installed or not in PATH
    """
    resolved = shutil.which(binary, path=path)
    if resolved is None:
        raise ExternalToolError(f"{binary} is not installed or not in PATH")
    return resolved


class ResticRunner:
    """
    Runs restic as a child process, one invocation at a time.
    """

    def __init__(
        self,
        environment: Mapping[str, str],
        binary: str = RESTIC_BINARY,
        signal_handler: Optional[SignalHandler] = None,
        echo_stream: Optional[IO[str]] = None,
    ):
        """
        Initialize the runner.

        Args:
            environment: Environment for the child (repository, password)
            binary: restic executable name or path
            signal_handler: Optional SignalHandler told about each child
            echo_stream: Where echoed output goes (default sys.stdout)
        """
        self.environment = dict(environment)
        self.binary = binary
        self.signal_handler = signal_handler
        self.echo_stream = echo_stream

    def ensure_available(self) -> str:
        """
        Check that the restic binary can be found.

        Returns:
            Resolved path of the binary

        Raises:
            ExternalToolError: If restic is not installed or not in PATH
        """
        return locate_restic(self.binary, self.environment.get("PATH"))

    def build_command(self, subcommand: str, args: Sequence[str] = ()) -> list:
        return [self.binary, subcommand, *args]

    def run(
        self,
        subcommand: str,
        args: Sequence[str] = (),
        echo: bool = False,
    ) -> ToolResult:
        """
        Execute one restic subcommand and capture its interleaved output.

        Output is teed line by line into a temporary capture file that only
        lives for the duration of this call, and optionally echoed to the
        console.

        Args:
            subcommand: restic subcommand, e.g. "backup"
            args: Arguments following the subcommand
            echo: Also write the output to the console as it arrives

        Returns:
            ToolResult with exit status and captured output

        Raises:
            ExternalToolError: Only if the binary cannot be executed
        """
        cmd = self.build_command(subcommand, args)
        logger.debug(f"Running: {' '.join(cmd)}")
        stream = self.echo_stream if self.echo_stream is not None else sys.stdout

        with tempfile.NamedTemporaryFile(
            mode="w+",
            prefix=CAPTURE_PREFIX,
            suffix=".out",
            encoding="utf-8",
        ) as capture:
            try:
                process = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    env=self.environment,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as e:
                raise ExternalToolError(f"Failed to execute {self.binary}: {e}")

            try:
                if self.signal_handler is not None:
                    self.signal_handler.set_process(process)
                for line in process.stdout:
                    capture.write(line)
                    if echo:
                        stream.write(line)
                        stream.flush()
                process.wait()
            finally:
                if process.poll() is None:
                    process.kill()
                    process.wait()
                if process.stdout is not None:
                    process.stdout.close()
                if self.signal_handler is not None:
                    self.signal_handler.set_process(None)

            capture.flush()
            capture.seek(0)
            output = capture.read()

        return ToolResult(exit_status=process.returncode, output=output)
