"""
External process invocation for the dump and import tools.

Every call can carry a deadline, and a runner can be bound to a cancel event
(set from a signal handler, for example). When either trips, the child is
terminated and the caller's cleanup path runs exactly as for a tool failure.
"""

import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import BinaryIO, List, Mapping, Optional


logger = logging.getLogger(__name__)


class ProcessError(Exception):
    """Raised when an external tool cannot be run to completion."""
    pass


class ProcessTimeout(ProcessError):
    """Raised when an external tool exceeds its deadline."""
    pass


class ProcessCancelled(ProcessError):
    """Raised when the runner's cancel event is set mid-call."""
    pass


@dataclass
class ProcessResult:
    returncode: int
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """
    Runs external commands with streamed stdin/stdout and captured stderr.
    """

    def __init__(
        self,
        cancel_event: Optional[threading.Event] = None,
        poll_interval: float = 0.5,
        kill_grace: float = 5.0
    ):
        """
        Initialize process runner.

        Args:
            cancel_event: Event that aborts the running command when set
            poll_interval: Seconds between deadline/cancellation checks
            kill_grace: Seconds to wait after SIGTERM before SIGKILL
        """
        self.cancel_event = cancel_event
        self.poll_interval = poll_interval
        self.kill_grace = kill_grace

    def run(
        self,
        command: str,
        args: List[str],
        stdin: Optional[BinaryIO] = None,
        stdout: Optional[BinaryIO] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None
    ) -> ProcessResult:
        """
        Run a command to completion.

        Args:
            command: Executable name or path
            args: Command-line arguments
            stdin: Binary file object fed to the process, DEVNULL if omitted
            stdout: Binary file object receiving the output, DEVNULL if omitted
            env: Environment for the child process
            timeout: Deadline in seconds, None for no deadline

        Returns:
            ProcessResult with exit status and decoded stderr

        Raises:
            ProcessError: If the command cannot be started
            ProcessTimeout: If the deadline expires
            ProcessCancelled: If the cancel event is set
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise ProcessCancelled(f"{command} cancelled before start")

        logger.debug(f"Running {command} {' '.join(args)}")

        try:
            proc = subprocess.Popen(
                [command] + list(args),
                stdin=stdin if stdin is not None else subprocess.DEVNULL,
                stdout=stdout if stdout is not None else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                env=dict(env) if env is not None else None
            )
        except FileNotFoundError:
            raise ProcessError(f"Command not found: {command}")
        except OSError as e:
            raise ProcessError(f"Failed to start {command}: {e}")

        deadline = time.monotonic() + timeout if timeout else None

        while True:
            try:
                _, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if self.cancel_event is not None and self.cancel_event.is_set():
                    self._terminate(proc)
                    raise ProcessCancelled(f"{command} cancelled")
                if deadline is not None and time.monotonic() >= deadline:
                    self._terminate(proc)
                    raise ProcessTimeout(f"{command} timed out after {timeout:g}s")

        return ProcessResult(
            returncode=proc.returncode,
            stderr=(stderr or b'').decode('utf-8', errors='replace').strip()
        )

    def _terminate(self, proc: subprocess.Popen):
        """Stop a child process, escalating to SIGKILL after the grace period."""
        proc.terminate()
        try:
            proc.communicate(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
            proc.kill()
            proc.communicate()
