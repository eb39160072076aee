"""
Launching the external capture and transcription engines.

Two execution modes are supported:

* run_to_completion: blocks the calling worker thread until the process exits
  and returns its merged stdout/stderr together with the exit code.
* spawn_managed: starts a long-running process (the capture engine) and
  returns a handle the caller owns until it calls stop() or terminate().

A process that cannot be started raises LaunchError, so "failed to launch"
is never confused with "ran and printed nothing".
"""

import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from ...utils.logger import get_logger
from ..errors import LaunchError

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    output: str
    exit_code: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ManagedProcess:
    """Handle to a long-running child process."""

    def __init__(self, popen: subprocess.Popen, args: Sequence[str]):
        self._popen = popen
        self._args = list(args)

    @property
    def pid(self) -> int:
        return self._popen.pid

    def poll(self) -> Optional[int]:
        return self._popen.poll()

    def is_running(self) -> bool:
        return self._popen.poll() is None

    def send_terminate(self) -> None:
        self._popen.terminate()

    def kill(self) -> None:
        self._popen.kill()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self._popen.wait(timeout=timeout)

    def __repr__(self) -> str:
        return f"ManagedProcess(pid={self.pid}, args={self._args!r})"


def get_bundled_bin_dir() -> Path:
    """Directory holding executables shipped with a packaged build."""
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS", Path(sys.executable).parent)) / "bin"
    return Path(__file__).resolve().parents[2] / "bin"


def resolve_executable(name: str, configured: Optional[str] = None) -> Optional[str]:
    if configured:
        path = Path(configured).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)
        logger.warning(f"Configured {name} path is not executable: {configured}")

    bundled = get_bundled_bin_dir() / name
    if bundled.is_file() and os.access(bundled, os.X_OK):
        return str(bundled)

    return shutil.which(name)


class ProcessRunner:
    def run_to_completion(
        self,
        executable: str,
        args: Sequence[str],
        on_started: Optional[Callable[[ManagedProcess], None]] = None,
    ) -> ProcessResult:
        """
        Run until the process exits and return its merged output.

        ``on_started`` receives the process handle before the output is read,
        so another thread can terminate a run that would otherwise block.
        """
        cmd = [executable, *args]
        logger.debug(f"Running: {cmd}")
        try:
            popen = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            raise LaunchError(f"Executable not found: {executable}") from e
        except OSError as e:
            raise LaunchError(f"Could not start {executable}: {e}") from e

        if on_started is not None:
            on_started(ManagedProcess(popen, cmd))
        output, _ = popen.communicate()

        logger.debug(f"{Path(executable).name} exited with code {popen.returncode}")
        return ProcessResult(output=output or "", exit_code=popen.returncode)

    def spawn_managed(self, executable: str, args: Sequence[str]) -> ManagedProcess:
        cmd = [executable, *args]
        logger.debug(f"Spawning: {cmd}")
        try:
            popen = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise LaunchError(f"Executable not found: {executable}") from e
        except OSError as e:
            raise LaunchError(f"Could not start {executable}: {e}") from e

        logger.info(f"Started {Path(executable).name} (pid {popen.pid})")
        return ManagedProcess(popen, cmd)

    def terminate(self, handle: ManagedProcess) -> None:
        """Send SIGTERM without waiting for the process to exit."""
        if handle.is_running():
            handle.send_terminate()

    def stop(self, handle: ManagedProcess, timeout: float) -> Optional[int]:
        """Terminate and wait up to ``timeout`` seconds, killing on expiry."""
        exit_code = handle.poll()
        if exit_code is not None:
            return exit_code

        handle.send_terminate()
        try:
            return handle.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                f"pid {handle.pid} did not exit within {timeout}s, killing it"
            )
            handle.kill()
            return handle.wait()
