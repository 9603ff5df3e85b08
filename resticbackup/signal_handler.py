"""Signal handling for interrupted restic runs.

SIGINT and SIGTERM are turned into ``SystemExit(128 + signum)`` after the
running restic child has been stopped. Raising instead of exiting
directly lets every ``with`` block unwind, so scoped capture files are
removed before the process ends.
"""

import logging
import signal
import subprocess
import threading
from typing import Any, Dict, Optional


# Seconds a terminated child gets before it is killed
TERMINATE_TIMEOUT = 5


class SignalHandler:
    """
    Handles OS signals for graceful shutdown while restic runs.

    Usage:
        with SignalHandler() as handler:
            runner = ResticRunner(env, signal_handler=handler)
            ...
    """

    def __init__(self):
        self._process: Optional[subprocess.Popen] = None
        self._original_handlers: Dict[int, Any] = {}
        self._registered = False
        self._logger = logging.getLogger(__name__)

    def register(self) -> None:
        """
        Register handlers for SIGTERM and SIGINT.

        Signal handlers can only be installed from the main thread; from
        any other thread registration is skipped but the process is still
        tracked so cleanup() can stop it.
        """
        if threading.current_thread() is not threading.main_thread():
            self._logger.debug("Signal handlers not registered: not running in main thread")
            self._registered = True
            return

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
            self._registered = True
            self._logger.debug("Signal handlers registered")
        except ValueError as e:
            self._logger.debug(f"Signal handlers not registered: {e}")
            self._registered = True

    def set_process(self, process: Optional[subprocess.Popen]) -> None:
        """Track the restic child to stop on a signal (None when it exits)."""
        self._process = process

    def unregister(self) -> None:
        """Restore the handlers that were active before register()."""
        if not self._registered:
            return

        if self._original_handlers and threading.current_thread() is threading.main_thread():
            try:
                for sig, handler in self._original_handlers.items():
                    signal.signal(sig, handler)
            except ValueError:
                pass

        self._original_handlers.clear()
        self._process = None
        self._registered = False
        self._logger.debug("Signal handlers unregistered")

    def __enter__(self) -> "SignalHandler":
        self.register()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.unregister()

    def _stop_process(self) -> bool:
        process = self._process
        if process is None or process.poll() is not None:
            return False
        try:
            process.terminate()
            try:
                process.wait(timeout=TERMINATE_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            self._logger.debug("restic subprocess terminated")
            return True
        except OSError as e:
            self._logger.warning(f"Error terminating restic process: {e}")
            return False
        finally:
            self._process = None

    def _handle_signal(self, signum: int, frame: Any) -> None:
        """
        Stop the running child, then raise SystemExit(128 + signum).
        """
        sig_name = signal.Signals(signum).name
        self._logger.warning(f"Received {sig_name}, stopping")
        self._stop_process()
        raise SystemExit(128 + signum)

    @property
    def is_registered(self) -> bool:
        """Return whether signal handlers are currently registered."""
        return self._registered

    def cleanup(self) -> bool:
        """
        Stop the tracked child without exiting.

        Returns:
            True if a running process was stopped
        """
        return self._stop_process()
