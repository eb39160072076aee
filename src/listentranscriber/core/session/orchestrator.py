"""
Recording and transcription session orchestrator.

Owns the session state and drives the capture engine (ffmpeg), the
transcription engine (whisper-cli) and model downloads. Blocking work runs on
worker threads; their results come back as queued Qt signals, so every state
change happens on the GUI thread that owns this object.

Public operations never raise. They return True when the request was
accepted, otherwise they record the error in ``state.last_error`` and report
it through ``status_changed``.
"""

from pathlib import Path
from typing import Callable, List, Optional, Union

from PySide6.QtCore import QObject, QThread, QTimer, Signal, Slot

from ...config import (
    CAPTURE_BINARY,
    CAPTURE_FORMAT,
    CAPTURE_POLL_INTERVAL_MS,
    CHANNELS,
    SAMPLE_RATE,
    STOP_TIMEOUT_SECONDS,
    TRANSCRIBE_BINARY,
)
from ...utils.logger import get_logger
from ..devices import (
    AudioDevice,
    find_device,
    find_device_by_index,
    select_preferred,
    selection_message,
)
from ..errors import (
    DownloadError,
    LaunchError,
    PreconditionError,
    SessionError,
)
from ..models import Language, ModelDownloader, ModelSpec, is_model_downloaded
from ..naming import (
    build_recording_name,
    ensure_output_dirs,
    models_dir,
    resolve_paths,
    transcript_base_for,
    transcript_path_for,
)
from ..process import ProcessResult, ProcessRunner, resolve_executable
from .state import SessionPhase, SessionState
from .workers import (
    DeviceListingThread,
    ModelDownloadThread,
    StopCaptureThread,
    TranscriptionThread,
)

logger = get_logger(__name__)

ExecutableResolver = Callable[[str, Optional[str]], Optional[str]]

SELECT_PREFERRED = "preferred"
SELECT_FIRST = "first"


def build_device_listing_args(capture_format: str = CAPTURE_FORMAT) -> List[str]:
    return ["-f", capture_format, "-list_devices", "true", "-i", ""]


def build_capture_args(
    device_index: int,
    audio_path: Union[str, Path],
    capture_format: str = CAPTURE_FORMAT,
) -> List[str]:
    return [
        "-f",
        capture_format,
        "-i",
        f":{device_index}",
        "-ar",
        str(SAMPLE_RATE),
        "-ac",
        str(CHANNELS),
        str(audio_path),
    ]


def build_transcription_args(
    model_path: Union[str, Path],
    audio_path: Union[str, Path],
    transcript_base_path: Union[str, Path],
    language: Language = Language.AUTO,
    use_gpu: bool = False,
) -> List[str]:
    args = [
        "-m",
        str(model_path),
        "-f",
        str(audio_path),
        "-otxt",
        "-of",
        str(transcript_base_path),
    ]
    if not use_gpu:
        args.append("-ng")
    if language != Language.AUTO:
        args += ["-l", language.value]
    return args


class SessionOrchestrator(QObject):
    """
    State machine for one recording/transcription session.

    Phases: IDLE -> RECORDING (start_recording) -> IDLE (stop_recording, once
    the capture engine has exited) -> TRANSCRIBING (transcribe_last_audio) ->
    IDLE (engine finished). Recording never leads straight to transcribing
    because the transcriber reads the finished file from disk.

    Signals:
        status_changed: Human-readable status line
        download_status_changed: Status line of the model download
        download_progress: Download progress (0.0-1.0)
        devices_changed: New device catalog (list of AudioDevice)
        state_changed: Any other observable state changed
        output_folder_changed: Output folder path, for persisting
    """

    status_changed = Signal(str)
    download_status_changed = Signal(str)
    download_progress = Signal(float)
    devices_changed = Signal(object)
    state_changed = Signal()
    output_folder_changed = Signal(str)

    def __init__(
        self,
        output_folder: Union[str, Path],
        runner: Optional[ProcessRunner] = None,
        capture_binary: Optional[str] = None,
        transcribe_binary: Optional[str] = None,
        capture_format: str = CAPTURE_FORMAT,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
        include_microphone: bool = False,
        executable_resolver: ExecutableResolver = resolve_executable,
        downloader_factory: Callable[[], ModelDownloader] = ModelDownloader,
        parent=None,
    ):
        super().__init__(parent)
        self._state = SessionState(
            output_folder=Path(output_folder).expanduser(),
            include_microphone=include_microphone,
        )
        self._runner = runner or ProcessRunner()
        self._capture_binary = capture_binary
        self._transcribe_binary = transcribe_binary
        self._capture_format = capture_format
        self._stop_timeout = stop_timeout
        self._resolve_executable = executable_resolver
        self._downloader_factory = downloader_factory

        self._selection_mode = SELECT_PREFERRED
        self._pending_transcript: Optional[Path] = None
        self._download_spec: Optional[ModelSpec] = None
        self._download_worker: Optional[ModelDownloadThread] = None
        self._workers: List[QThread] = []

        self._capture_timer = QTimer(self)
        self._capture_timer.setInterval(CAPTURE_POLL_INTERVAL_MS)
        self._capture_timer.timeout.connect(self._check_capture)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def detect_devices(self, select: str = SELECT_PREFERRED) -> bool:
        if self._state.is_detecting:
            return self._fail(PreconditionError("Device detection is already running."))

        try:
            executable = self._require_executable(CAPTURE_BINARY, self._capture_binary)
        except LaunchError as e:
            return self._fail(e)

        self._state.is_detecting = True
        self._selection_mode = select
        self._set_status("Detecting devices...")

        worker = DeviceListingThread(
            self._runner,
            executable,
            build_device_listing_args(self._capture_format),
            parent=self,
        )
        worker.completed.connect(self._on_devices_listed)
        worker.error.connect(self._on_device_listing_error)
        self._start_worker(worker)
        return True

    def refresh_devices(self) -> bool:
        return self.detect_devices(select=SELECT_FIRST)

    @Slot(object)
    def _on_devices_listed(self, devices: List[AudioDevice]) -> None:
        state = self._state
        state.is_detecting = False
        state.devices = list(devices)
        self.devices_changed.emit(list(state.devices))

        if not state.devices:
            state.selected_device_id = None
            self._fail(
                SessionError("No audio devices found. Check that ffmpeg can list devices.")
            )
            return

        if self._selection_mode == SELECT_FIRST:
            self._apply_selection(state.devices[0])
            message = f"Found {len(state.devices)} audio devices."
        else:
            device = select_preferred(state.devices, False)
            if device is not None:
                self._apply_selection(device)
            message = selection_message(device, False)

        if state.include_microphone:
            device = select_preferred(state.devices, True)
            if device is not None:
                self._apply_selection(device)
            message = selection_message(device, True)

        state.last_error = None
        self._set_status(message)

    @Slot(str)
    def _on_device_listing_error(self, message: str) -> None:
        self._state.is_detecting = False
        self._fail(LaunchError(f"Could not list devices: {message}"))

    def set_include_microphone(self, enabled: bool) -> bool:
        state = self._state
        state.include_microphone = enabled

        if not state.devices:
            # Applied by _on_devices_listed once a catalog arrives.
            self._set_status(
                "Microphone "
                + ("ON" if enabled else "OFF")
                + ". Detect devices to pick a matching input."
            )
            return True

        device = select_preferred(state.devices, enabled)
        message = selection_message(device, enabled)
        if device is None:
            return self._fail(PreconditionError(message))

        self._apply_selection(device)
        state.last_error = None
        self._set_status(message)
        return True

    def select_device(self, device_id: str) -> bool:
        device = find_device(self._state.devices, device_id)
        if device is None:
            return self._fail(PreconditionError(f"Unknown device: {device_id}"))
        self._apply_selection(device)
        self._set_status(f"Selected {device.label}.")
        return True

    def set_device_index(self, index: Optional[int]) -> bool:
        state = self._state
        if index is not None and index < 0:
            return self._fail(PreconditionError("Device index must be 0 or greater."))

        state.selected_device_index = index
        device = None if index is None else find_device_by_index(state.devices, index)
        state.selected_device_id = device.id if device else None
        self.state_changed.emit()
        return True

    def _apply_selection(self, device: AudioDevice) -> None:
        self._state.selected_device_index = device.index
        self._state.selected_device_id = device.id
        self.state_changed.emit()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_recording(self, base_name: str = "", append_timestamp: bool = True) -> bool:
        state = self._state
        if state.is_recording:
            return self._fail(PreconditionError("A recording is already in progress."))
        if state.selected_device_index is None:
            return self._fail(PreconditionError("Select an audio device first."))

        try:
            executable = self._require_executable(CAPTURE_BINARY, self._capture_binary)
        except LaunchError as e:
            return self._fail(e)

        name = build_recording_name(base_name, append_timestamp)
        try:
            paths = resolve_paths(state.output_folder, name)
        except OSError as e:
            return self._fail(SessionError(f"Could not create output folder: {e}"))

        if paths.audio_path.exists():
            return self._fail(
                PreconditionError(
                    f"{paths.audio_path.name} already exists. "
                    "Choose another name or enable 'Append date'."
                )
            )

        args = build_capture_args(
            state.selected_device_index, paths.audio_path, self._capture_format
        )
        try:
            handle = self._runner.spawn_managed(executable, args)
        except LaunchError as e:
            return self._fail(LaunchError(f"Could not start recording: {e}"))

        state.capture_handle = handle
        state.last_audio_path = paths.audio_path
        state.last_error = None
        self._capture_timer.start()
        logger.info(f"Recording device {state.selected_device_index} to {paths.audio_path}")
        self._set_status(f"Recording to {paths.audio_path.name}...")
        return True

    def stop_recording(self) -> bool:
        state = self._state
        if not state.is_recording:
            return self._fail(PreconditionError("No recording in progress."))
        if state.is_stopping:
            return False

        state.is_stopping = True
        self._capture_timer.stop()
        self._set_status("Stopping recording...")

        worker = StopCaptureThread(
            self._runner, state.capture_handle, self._stop_timeout, parent=self
        )
        worker.completed.connect(self._on_capture_stopped)
        worker.error.connect(self._on_capture_stop_error)
        self._start_worker(worker)
        return True

    @Slot(object)
    def _on_capture_stopped(self, exit_code: Optional[int]) -> None:
        state = self._state
        state.capture_handle = None
        state.is_stopping = False
        logger.info(f"Recording stopped (exit code {exit_code})")

        audio = state.last_audio_path
        if audio is None or not audio.is_file():
            self._fail(SessionError("Recording stopped, but no audio file was written."))
            return

        state.last_error = None
        self._set_status("Recording stopped.")

    @Slot(str)
    def _on_capture_stop_error(self, message: str) -> None:
        self._state.is_stopping = False
        self._capture_timer.start()
        self._fail(SessionError(f"Could not stop recording: {message}"))

    @Slot()
    def _check_capture(self) -> None:
        state = self._state
        handle = state.capture_handle
        if handle is None or state.is_stopping:
            self._capture_timer.stop()
            return

        exit_code = handle.poll()
        if exit_code is None:
            return

        self._capture_timer.stop()
        state.capture_handle = None
        logger.warning(f"Capture engine exited on its own with code {exit_code}")
        if exit_code == 0:
            self._set_status("Recording ended: the capture engine exited.")
        else:
            self._fail(
                LaunchError(f"Capture engine exited unexpectedly (code {exit_code}).")
            )

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    def choose_audio_file(self, path: Union[str, Path]) -> bool:
        if self._state.is_recording:
            return self._fail(PreconditionError("Stop the recording before choosing a file."))

        audio = Path(path).expanduser()
        if not audio.is_file():
            return self._fail(PreconditionError(f"Audio file not found: {audio}"))

        self._state.last_audio_path = audio
        self._state.last_error = None
        self._set_status(f"Selected file: {audio.name}")
        return True

    def check_transcription_ready(self, model: ModelSpec) -> Path:
        """Return the model path, or raise PreconditionError."""
        state = self._state
        if state.is_transcribing:
            raise PreconditionError("A transcription is already running.")
        if state.is_recording:
            raise PreconditionError("Stop the recording before transcribing.")
        if state.last_audio_path is None:
            raise PreconditionError("No audio to transcribe. Record or choose a file first.")
        if not state.last_audio_path.is_file():
            raise PreconditionError(f"Audio file not found: {state.last_audio_path}")

        if not is_model_downloaded(model, state.output_folder):
            raise PreconditionError(
                f"Model {model.file_name} not found. Use 'Download model' first."
            )
        return model.local_path(state.output_folder)

    def transcribe_last_audio(
        self,
        model: ModelSpec,
        language: Language = Language.AUTO,
        use_gpu: bool = False,
    ) -> bool:
        try:
            model_path = self.check_transcription_ready(model)
            executable = self._require_executable(
                TRANSCRIBE_BINARY, self._transcribe_binary
            )
        except SessionError as e:
            return self._fail(e)

        state = self._state
        audio = state.last_audio_path
        transcript_base = transcript_base_for(audio)
        args = build_transcription_args(
            model_path, audio, transcript_base, language, use_gpu
        )

        state.is_transcribing = True
        self._pending_transcript = transcript_path_for(transcript_base)
        logger.info(f"Transcribing {audio} with {model.file_name}")
        self._set_status("Transcribing...")

        worker = TranscriptionThread(self._runner, executable, args, parent=self)
        worker.completed.connect(self._on_transcription_finished)
        worker.error.connect(self._on_transcription_error)
        self._start_worker(worker)
        return True

    @Slot(object)
    def _on_transcription_finished(self, result: ProcessResult) -> None:
        state = self._state
        state.is_transcribing = False
        state.last_transcriber_log = result.output.strip() or "No output from transcriber."
        transcript = self._pending_transcript
        self._pending_transcript = None

        if not result.succeeded:
            self._fail(
                SessionError(
                    f"Transcription failed (exit code {result.exit_code}). "
                    "Check the transcriber log; try turning GPU off."
                )
            )
            return
        if transcript is None or not transcript.is_file():
            self._fail(SessionError("Transcriber finished but wrote no transcript."))
            return

        state.last_transcript_path = transcript
        state.last_error = None
        self._set_status(f"Transcript ready: {transcript.name}")

    @Slot(str)
    def _on_transcription_error(self, message: str) -> None:
        self._state.is_transcribing = False
        self._pending_transcript = None
        self._fail(LaunchError(f"Could not run transcriber: {message}"))

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def ensure_model(self, spec: ModelSpec) -> bool:
        state = self._state
        if is_model_downloaded(spec, state.output_folder):
            self._set_download_status(f"Model already present: {spec.file_name}")
            return True
        if state.is_downloading:
            self._set_download_status("A model download is already running.")
            return False

        target_dir = models_dir(state.output_folder)
        state.is_downloading = True
        self._download_spec = spec
        self._set_download_status(f"Downloading {spec.file_name}...")

        worker = ModelDownloadThread(
            spec, target_dir, downloader=self._downloader_factory(), parent=self
        )
        worker.progress.connect(self._on_download_progress)
        worker.completed.connect(self._on_download_finished)
        worker.error.connect(self._on_download_error)
        self._download_worker = worker
        self._start_worker(worker)
        return True

    def cancel_download(self) -> None:
        if self._download_worker is not None:
            self._download_worker.cancel()

    @Slot(object, object)
    def _on_download_progress(self, downloaded: int, total: int) -> None:
        if not total or self._download_spec is None:
            return
        fraction = min(1.0, downloaded / total)
        self.download_progress.emit(fraction)
        self._set_download_status(
            f"Downloading {self._download_spec.file_name}... {int(fraction * 100)}%"
        )

    @Slot(bool)
    def _on_download_finished(self, success: bool) -> None:
        spec = self._download_spec
        self._state.is_downloading = False
        self._download_worker = None
        self._download_spec = None
        if success:
            self._set_download_status(f"Model ready: {spec.file_name}")
        else:
            self._set_download_status("Download cancelled.")

    @Slot(str)
    def _on_download_error(self, message: str) -> None:
        self._state.is_downloading = False
        self._download_worker = None
        self._download_spec = None
        error = DownloadError(message)
        self._state.last_error = error
        logger.error(f"Model download failed: {message}")
        self._set_download_status(f"Download failed: {message}")

    # ------------------------------------------------------------------
    # Output folder and lifecycle
    # ------------------------------------------------------------------

    def set_output_folder(self, folder: Union[str, Path]) -> bool:
        state = self._state
        if state.is_recording or state.is_transcribing or state.is_downloading:
            return self._fail(
                PreconditionError("Wait for the current task before changing the folder.")
            )

        try:
            path = ensure_output_dirs(folder)
        except OSError as e:
            return self._fail(SessionError(f"Could not create output folder: {e}"))

        state.output_folder = path
        self.output_folder_changed.emit(str(path))
        self._set_status(f"Output folder: {path}")
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop capture and transcription, then wait for worker threads.

        Each wait is bounded by ``timeout`` (the stop timeout by default). A
        transcription engine that ignores termination is killed once its
        wait expires.
        """
        timeout = timeout if timeout is not None else self._stop_timeout
        wait_ms = int(timeout * 1000)
        self._capture_timer.stop()
        self.cancel_download()

        handle = self._state.capture_handle
        if handle is not None and not self._state.is_stopping:
            logger.info("Stopping capture engine before exit")
            try:
                self._runner.stop(handle, timeout)
            except OSError as e:
                logger.error(f"Could not stop capture engine: {e}")
            self._state.capture_handle = None

        workers = list(self._workers)
        for worker in workers:
            if isinstance(worker, TranscriptionThread):
                worker.cancel()

        for worker in workers:
            if worker.wait(wait_ms):
                continue
            if isinstance(worker, TranscriptionThread):
                worker.kill_process()
                if worker.wait(wait_ms):
                    continue
            logger.warning(f"{type(worker).__name__} still running at shutdown")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_executable(self, name: str, configured: Optional[str]) -> str:
        executable = self._resolve_executable(name, configured)
        if not executable:
            raise LaunchError(f"{name} was not found. Install it or set its path in settings.")
        return executable

    def _start_worker(self, worker: QThread) -> None:
        self._workers.append(worker)
        worker.finished.connect(self._release_worker)
        worker.start()

    @Slot()
    def _release_worker(self) -> None:
        worker = self.sender()
        if worker in self._workers:
            self._workers.remove(worker)
            worker.deleteLater()

    def _set_status(self, message: str) -> None:
        self._state.status = message
        self.status_changed.emit(message)
        self.state_changed.emit()

    def _set_download_status(self, message: str) -> None:
        self._state.download_status = message
        self.download_status_changed.emit(message)
        self.state_changed.emit()

    def _fail(self, error: SessionError) -> bool:
        logger.warning(f"{type(error).__name__}: {error}")
        self._state.last_error = error
        self._set_status(str(error))
        return False
