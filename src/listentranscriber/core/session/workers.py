"""
Background threads for the blocking parts of a session.

Each worker runs one blocking job and reports back exactly once through its
``completed`` or ``error`` signal. Signals cross to the GUI thread through
Qt's queued connections, so the receiving slots are the only place where
session state changes.
"""

import time
from pathlib import Path
from typing import List, Optional, Sequence

from PySide6.QtCore import QThread, Signal

from ...utils.logger import get_logger
from ..devices import parse_device_listing
from ..models import ModelDownloader, ModelSpec
from ..process import ManagedProcess, ProcessRunner

logger = get_logger(__name__)


class DeviceListingThread(QThread):
    """Runs the capture engine's device listing and parses the result."""

    completed = Signal(object)  # List[AudioDevice]
    error = Signal(str)

    def __init__(
        self,
        runner: ProcessRunner,
        executable: str,
        args: Sequence[str],
        parent=None,
    ):
        super().__init__(parent)
        self._runner = runner
        self._executable = executable
        self._args = list(args)

    def run(self):
        try:
            result = self._runner.run_to_completion(self._executable, self._args)
            # ffmpeg exits non-zero here because no input is opened.
            devices = parse_device_listing(result.output)
            logger.info(f"Device listing found {len(devices)} audio devices")
            self.completed.emit(devices)
        except Exception as e:
            logger.exception(f"Device listing failed: {e}")
            self.error.emit(str(e))


class TranscriptionThread(QThread):
    """
    Runs the transcription engine to completion.

    The engine's process handle is kept so cancel() can terminate it from
    the GUI thread while run() is blocked reading its output.

    Signals:
        completed: (ProcessResult) once the engine has exited
        error: (error_message) when the engine could not be started
    """

    completed = Signal(object)  # ProcessResult
    error = Signal(str)

    def __init__(
        self,
        runner: ProcessRunner,
        executable: str,
        args: Sequence[str],
        parent=None,
    ):
        super().__init__(parent)
        self._runner = runner
        self._executable = executable
        self._args: List[str] = list(args)
        self._handle: Optional[ManagedProcess] = None
        self._cancelled = False

    def run(self):
        start_time = time.time()
        try:
            result = self._runner.run_to_completion(
                self._executable, self._args, on_started=self._on_started
            )
            duration = time.time() - start_time
            logger.info(
                f"Transcription engine exited with code {result.exit_code} "
                f"after {duration:.2f}s"
            )
            self.completed.emit(result)
        except Exception as e:
            logger.exception(f"Transcription failed to run: {e}")
            self.error.emit(str(e))

    def _on_started(self, handle: ManagedProcess) -> None:
        self._handle = handle
        if self._cancelled:
            handle.send_terminate()

    def cancel(self) -> None:
        """Ask the engine to exit. Safe to call before it has started."""
        self._cancelled = True
        handle = self._handle
        if handle is not None and handle.is_running():
            logger.info(f"Terminating transcription engine pid {handle.pid}")
            handle.send_terminate()

    def kill_process(self) -> None:
        handle = self._handle
        if handle is not None and handle.is_running():
            logger.warning(f"Killing transcription engine pid {handle.pid}")
            handle.kill()


class StopCaptureThread(QThread):
    """Terminates the capture engine and waits for it to release the file."""

    # Exit code, or None if it could not be determined
    completed = Signal(object)
    error = Signal(str)

    def __init__(
        self,
        runner: ProcessRunner,
        handle: ManagedProcess,
        timeout: float,
        parent=None,
    ):
        super().__init__(parent)
        self._runner = runner
        self._handle = handle
        self._timeout = timeout

    def run(self):
        try:
            exit_code = self._runner.stop(self._handle, self._timeout)
            logger.info(f"Capture engine pid {self._handle.pid} exited ({exit_code})")
            self.completed.emit(exit_code)
        except Exception as e:
            logger.exception(f"Stopping capture failed: {e}")
            self.error.emit(str(e))


class ModelDownloadThread(QThread):
    """Thread for downloading models without blocking the UI."""

    progress = Signal(object, object)  # bytes_downloaded, total_bytes
    completed = Signal(bool)  # True when the model is in place
    error = Signal(str)

    def __init__(
        self,
        spec: ModelSpec,
        target_dir: Path,
        downloader: Optional[ModelDownloader] = None,
        parent=None,
    ):
        super().__init__(parent)
        self._spec = spec
        self._target_dir = Path(target_dir)
        self._downloader = downloader or ModelDownloader()

    def run(self):
        try:
            success = self._downloader.download(
                self._spec,
                self._target_dir,
                on_progress=self._on_progress,
            )
            self.completed.emit(success)
        except Exception as e:
            logger.exception(f"Model download failed: {e}")
            self.error.emit(str(e))

    def _on_progress(self, downloaded: int, total: int):
        self.progress.emit(downloaded, total)

    def cancel(self):
        self._downloader.cancel()
