"""
Tests for SessionOrchestrator.

The external engines are replaced by FakeRunner so the tests exercise the
state machine, the worker threads and the signal plumbing without ffmpeg or
whisper-cli installed.
"""

import threading
import time
from pathlib import Path
from typing import List, Optional
from unittest.mock import patch

import pytest

from listentranscriber.core.errors import (
    DownloadError,
    LaunchError,
    PreconditionError,
    SessionError,
)
from listentranscriber.core.models import Language, ModelSize, ModelSpec
from listentranscriber.core.process import ProcessResult
from listentranscriber.core.session import (
    SessionOrchestrator,
    SessionPhase,
    build_capture_args,
    build_device_listing_args,
    build_transcription_args,
)

MEDIUM = ModelSpec(ModelSize.MEDIUM)
WAIT_MS = 5000


class FakeHandle:
    def __init__(self, args):
        self.args = list(args)
        self.pid = 4242
        self.exit_code: Optional[int] = None

    def poll(self):
        return self.exit_code

    def is_running(self):
        return self.exit_code is None


class FakeRunner:
    """Records launches; results are keyed by executable name."""

    def __init__(self):
        self.runs: List[tuple] = []
        self.spawned: List[FakeHandle] = []
        self.stopped: List[FakeHandle] = []
        self.results = {}
        self.write_audio = True
        self.launch_error: Optional[LaunchError] = None

    def run_to_completion(self, executable, args, on_started=None):
        self.runs.append((executable, list(args)))
        result = self.results[Path(executable).name]
        if callable(result):
            return result(list(args), on_started)
        return result

    def spawn_managed(self, executable, args):
        if self.launch_error is not None:
            raise self.launch_error
        if self.write_audio:
            Path(args[-1]).write_bytes(b"RIFF")
        handle = FakeHandle([executable, *args])
        self.spawned.append(handle)
        return handle

    def stop(self, handle, timeout):
        self.stopped.append(handle)
        handle.exit_code = 255
        return 255


class FakeDownloader:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls = 0

    def download(self, spec, target_dir, on_progress=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if on_progress:
            on_progress(5, 10)
            on_progress(10, 10)
        target = Path(target_dir) / spec.file_name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"ggml")
        return True

    def cancel(self):
        pass


class HangingEngine:
    """Transcription engine that runs until it is terminated or killed."""

    def __init__(self, ignore_terminate=False):
        self.ignore_terminate = ignore_terminate
        self.started = threading.Event()
        self.done = threading.Event()
        self.terminated = False
        self.killed = False
        self.handle = None

    def __call__(self, args, on_started=None):
        engine = self

        class Handle(FakeHandle):
            def send_terminate(self):
                engine.terminated = True
                if not engine.ignore_terminate:
                    self.exit_code = -15
                    engine.done.set()

            def kill(self):
                engine.killed = True
                self.exit_code = -9
                engine.done.set()

        self.handle = Handle(args)
        if on_started is not None:
            on_started(self.handle)
        self.started.set()
        self.done.wait(10)
        return ProcessResult(output="", exit_code=self.handle.exit_code or 0)


def fake_resolver(name, configured=None):
    return f"/fake/bin/{name}"


def write_transcript(output="transcribed text", exit_code=0):
    def run(args, on_started=None):
        base = args[args.index("-of") + 1]
        Path(base + ".txt").write_text("hello world")
        return ProcessResult(output=output, exit_code=exit_code)

    return run


@pytest.fixture
def runner(device_listing):
    runner = FakeRunner()
    runner.results["ffmpeg"] = ProcessResult(output=device_listing, exit_code=1)
    runner.results["whisper-cli"] = write_transcript()
    return runner


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def output_folder(tmp_path):
    return tmp_path / "Transcripts"


@pytest.fixture
def orchestrator(runner, downloader, output_folder):
    orch = SessionOrchestrator(
        output_folder,
        runner=runner,
        executable_resolver=fake_resolver,
        downloader_factory=lambda: downloader,
    )
    yield orch
    orch.shutdown()


@pytest.fixture
def audio_file(tmp_path):
    audio = tmp_path / "call.wav"
    audio.write_bytes(b"RIFF")
    return audio


@pytest.fixture
def model_file(output_folder):
    path = MEDIUM.local_path(output_folder)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"ggml")
    return path


def detect(qtbot, orch, refresh=False):
    with qtbot.waitSignal(orch.devices_changed, timeout=WAIT_MS):
        if refresh:
            assert orch.refresh_devices()
        else:
            assert orch.detect_devices()
    qtbot.waitUntil(lambda: not orch.state.is_detecting, timeout=WAIT_MS)


class TestArguments:
    def test_device_listing_args(self):
        assert build_device_listing_args() == [
            "-f",
            "avfoundation",
            "-list_devices",
            "true",
            "-i",
            "",
        ]

    def test_capture_args(self):
        assert build_capture_args(1, "/out/a.wav") == [
            "-f",
            "avfoundation",
            "-i",
            ":1",
            "-ar",
            "16000",
            "-ac",
            "1",
            "/out/a.wav",
        ]

    def test_transcription_args_auto_cpu(self):
        args = build_transcription_args("/m.bin", "/a.wav", "/a-transcript")
        assert args == ["-m", "/m.bin", "-f", "/a.wav", "-otxt", "-of", "/a-transcript", "-ng"]

    def test_transcription_args_language_gpu(self):
        args = build_transcription_args(
            "/m.bin", "/a.wav", "/a-transcript", Language.ES, use_gpu=True
        )
        assert "-ng" not in args
        assert args[-2:] == ["-l", "es"]


class TestDeviceDetection:
    def test_detect_selects_blackhole(self, qtbot, orchestrator):
        detect(qtbot, orchestrator)

        state = orchestrator.state
        assert len(state.devices) == 3
        assert state.selected_device_index == 1
        assert state.selected_device_id == "1-BlackHole 2ch"
        assert state.status == "Microphone OFF: using BlackHole 2ch."
        assert state.last_error is None

    def test_listing_args_passed_to_runner(self, qtbot, orchestrator, runner):
        detect(qtbot, orchestrator)
        executable, args = runner.runs[0]
        assert executable == "/fake/bin/ffmpeg"
        assert args == build_device_listing_args()

    def test_refresh_selects_first(self, qtbot, orchestrator):
        detect(qtbot, orchestrator, refresh=True)

        assert orchestrator.state.selected_device_index == 0
        assert orchestrator.state.status == "Found 3 audio devices."

    def test_microphone_on_selects_aggregate(self, qtbot, runner, downloader, output_folder):
        orch = SessionOrchestrator(
            output_folder,
            runner=runner,
            include_microphone=True,
            executable_resolver=fake_resolver,
        )
        try:
            detect(qtbot, orch)
            assert orch.state.selected_device_index == 2
            assert orch.state.status == "Microphone ON: using Aggregate Device."
        finally:
            orch.shutdown()

    def test_empty_listing(self, qtbot, orchestrator, runner):
        runner.results["ffmpeg"] = ProcessResult(output="", exit_code=1)

        detect(qtbot, orchestrator)

        assert orchestrator.state.devices == []
        assert orchestrator.state.selected_device_id is None
        assert isinstance(orchestrator.state.last_error, SessionError)

    def test_missing_capture_engine(self, runner, output_folder):
        orch = SessionOrchestrator(
            output_folder, runner=runner, executable_resolver=lambda name, configured=None: None
        )
        try:
            assert orch.detect_devices() is False
            assert isinstance(orch.state.last_error, LaunchError)
            assert "ffmpeg" in orch.state.status
            assert runner.runs == []
        finally:
            orch.shutdown()

    def test_detect_while_detecting(self, qtbot, orchestrator, runner):
        assert orchestrator.detect_devices()
        assert orchestrator.detect_devices() is False
        qtbot.waitUntil(lambda: not orchestrator.state.is_detecting, timeout=WAIT_MS)
        assert len(runner.runs) == 1

    def test_toggle_microphone_after_catalog(self, qtbot, orchestrator):
        detect(qtbot, orchestrator)

        assert orchestrator.set_include_microphone(True)
        assert orchestrator.state.selected_device_index == 2

        assert orchestrator.set_include_microphone(False)
        assert orchestrator.state.selected_device_index == 1

    def test_toggle_microphone_without_match_keeps_selection(self, qtbot, orchestrator, runner):
        runner.results["ffmpeg"] = ProcessResult(
            output=(
                "[x] AVFoundation audio devices:\n"
                "[x] [0] MacBook Pro Microphone\n"
                "[x] [1] BlackHole 2ch\n"
            ),
            exit_code=1,
        )
        detect(qtbot, orchestrator)

        assert orchestrator.set_include_microphone(True) is False
        assert orchestrator.state.selected_device_index == 1
        assert "Aggregate Device" in orchestrator.state.status

    def test_toggle_microphone_before_catalog(self, orchestrator):
        assert orchestrator.set_include_microphone(True)
        assert orchestrator.state.include_microphone is True
        assert orchestrator.state.selected_device_index is None

    def test_toggle_microphone_before_catalog_applies_on_detect(self, qtbot, orchestrator):
        orchestrator.set_include_microphone(True)

        detect(qtbot, orchestrator)

        assert orchestrator.state.selected_device_index == 2
        assert orchestrator.state.selected_device_id == "2-Aggregate Device"
        assert orchestrator.state.status == "Microphone ON: using Aggregate Device."

    def test_select_device(self, qtbot, orchestrator):
        detect(qtbot, orchestrator)

        assert orchestrator.select_device("0-MacBook Pro Microphone")
        assert orchestrator.state.selected_device_index == 0

        assert orchestrator.select_device("9-Unknown") is False
        assert orchestrator.state.selected_device_index == 0

    def test_set_device_index(self, orchestrator):
        assert orchestrator.set_device_index(3)
        assert orchestrator.state.selected_device_index == 3
        assert orchestrator.state.selected_device_id is None

        assert orchestrator.set_device_index(-1) is False
        assert isinstance(orchestrator.state.last_error, PreconditionError)


class TestRecording:
    def test_start_requires_device(self, orchestrator, runner):
        assert orchestrator.start_recording("standup") is False
        assert isinstance(orchestrator.state.last_error, PreconditionError)
        assert runner.spawned == []

    def test_start_recording(self, orchestrator, runner, output_folder):
        orchestrator.set_device_index(1)

        assert orchestrator.start_recording("Stand Up", append_timestamp=True)

        state = orchestrator.state
        assert state.is_recording
        assert orchestrator.phase == SessionPhase.RECORDING
        assert len(runner.spawned) == 1

        args = runner.spawned[0].args
        assert args[0] == "/fake/bin/ffmpeg"
        assert ":1" in args
        audio = Path(args[-1])
        assert audio.parent == output_folder
        assert audio.name.startswith("stand-up-")
        assert audio.suffix == ".wav"
        assert ":" not in audio.name
        assert state.last_audio_path == audio
        assert (output_folder / "models").is_dir()

    def test_existing_file_without_timestamp_is_rejected(
        self, orchestrator, runner, output_folder
    ):
        output_folder.mkdir(parents=True)
        (output_folder / "standup.wav").write_bytes(b"RIFF")
        orchestrator.set_device_index(1)

        assert orchestrator.start_recording("standup", append_timestamp=False) is False

        state = orchestrator.state
        assert isinstance(state.last_error, PreconditionError)
        assert "Append date" in state.status
        assert runner.spawned == []
        assert state.last_audio_path is None
        assert (output_folder / "standup.wav").read_bytes() == b"RIFF"

    def test_start_twice_spawns_once(self, orchestrator, runner):
        orchestrator.set_device_index(1)

        assert orchestrator.start_recording("a")
        assert orchestrator.start_recording("b") is False

        assert len(runner.spawned) == 1
        assert isinstance(orchestrator.state.last_error, PreconditionError)
        assert orchestrator.state.is_recording

    def test_start_launch_error(self, orchestrator, runner):
        runner.launch_error = LaunchError("permission denied")
        orchestrator.set_device_index(1)

        assert orchestrator.start_recording("a") is False
        assert not orchestrator.state.is_recording
        assert isinstance(orchestrator.state.last_error, LaunchError)

    def test_stop_recording(self, qtbot, orchestrator, runner):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup", append_timestamp=False)

        assert orchestrator.stop_recording()
        # Recording until the engine has confirmed its exit.
        assert orchestrator.state.is_recording
        assert orchestrator.state.is_stopping

        qtbot.waitUntil(lambda: not orchestrator.state.is_recording, timeout=WAIT_MS)

        state = orchestrator.state
        assert not state.is_stopping
        assert state.status == "Recording stopped."
        assert runner.stopped == runner.spawned
        assert state.last_audio_path.name == "standup.wav"
        assert orchestrator.phase == SessionPhase.IDLE

    def test_stop_while_stopping(self, qtbot, orchestrator, runner):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        assert orchestrator.stop_recording()
        assert orchestrator.stop_recording() is False

        qtbot.waitUntil(lambda: not orchestrator.state.is_recording, timeout=WAIT_MS)
        assert len(runner.stopped) == 1

    def test_stop_without_recording(self, orchestrator):
        assert orchestrator.stop_recording() is False
        assert isinstance(orchestrator.state.last_error, PreconditionError)

    def test_stop_without_audio_file(self, qtbot, orchestrator, runner):
        runner.write_audio = False
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        orchestrator.stop_recording()
        qtbot.waitUntil(lambda: not orchestrator.state.is_recording, timeout=WAIT_MS)

        assert isinstance(orchestrator.state.last_error, SessionError)
        assert "no audio file" in orchestrator.state.status

    def test_capture_engine_exits_on_its_own(self, orchestrator, runner):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        runner.spawned[0].exit_code = 1
        orchestrator._check_capture()

        assert not orchestrator.state.is_recording
        assert isinstance(orchestrator.state.last_error, LaunchError)

    def test_shutdown_stops_capture(self, orchestrator, runner):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        orchestrator.shutdown()

        assert runner.stopped == runner.spawned
        assert not orchestrator.state.is_recording

    def test_shutdown_terminates_transcription(
        self, qtbot, orchestrator, runner, audio_file, model_file
    ):
        engine = HangingEngine()
        runner.results["whisper-cli"] = engine
        orchestrator.choose_audio_file(audio_file)
        assert orchestrator.transcribe_last_audio(MEDIUM)
        qtbot.waitUntil(engine.started.is_set, timeout=WAIT_MS)

        start = time.monotonic()
        orchestrator.shutdown(timeout=0.5)

        assert time.monotonic() - start < 1.0
        assert engine.terminated
        assert not engine.killed

    def test_shutdown_kills_transcription_that_ignores_terminate(
        self, qtbot, orchestrator, runner, audio_file, model_file
    ):
        engine = HangingEngine(ignore_terminate=True)
        runner.results["whisper-cli"] = engine
        orchestrator.choose_audio_file(audio_file)
        assert orchestrator.transcribe_last_audio(MEDIUM)
        qtbot.waitUntil(engine.started.is_set, timeout=WAIT_MS)

        start = time.monotonic()
        orchestrator.shutdown(timeout=0.1)

        assert time.monotonic() - start < 1.0
        assert engine.terminated
        assert engine.killed


class TestTranscription:
    def test_without_audio_never_runs(self, orchestrator, runner, model_file):
        assert orchestrator.transcribe_last_audio(MEDIUM) is False

        assert isinstance(orchestrator.state.last_error, PreconditionError)
        assert runner.runs == []

    def test_check_ready_raises(self, orchestrator):
        with pytest.raises(PreconditionError):
            orchestrator.check_transcription_ready(MEDIUM)

    def test_missing_model(self, orchestrator, runner, audio_file):
        orchestrator.choose_audio_file(audio_file)

        assert orchestrator.transcribe_last_audio(MEDIUM) is False
        assert "ggml-medium.bin" in orchestrator.state.status
        assert runner.runs == []

    def test_while_recording(self, orchestrator, runner, model_file):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        assert orchestrator.transcribe_last_audio(MEDIUM) is False
        assert runner.runs == []

    def test_choose_missing_file(self, orchestrator, tmp_path):
        assert orchestrator.choose_audio_file(tmp_path / "nope.wav") is False
        assert orchestrator.state.last_audio_path is None

    def test_transcription_success(self, qtbot, orchestrator, runner, audio_file, model_file):
        assert orchestrator.choose_audio_file(audio_file)

        assert orchestrator.transcribe_last_audio(MEDIUM, Language.EN)
        assert orchestrator.phase == SessionPhase.TRANSCRIBING

        qtbot.waitUntil(lambda: not orchestrator.state.is_transcribing, timeout=WAIT_MS)

        state = orchestrator.state
        assert state.last_transcript_path == audio_file.with_name("call-transcript.txt")
        assert state.last_transcript_path.read_text() == "hello world"
        assert state.last_transcriber_log == "transcribed text"
        assert state.last_error is None
        assert orchestrator.phase == SessionPhase.IDLE

        executable, args = runner.runs[0]
        assert executable == "/fake/bin/whisper-cli"
        assert args == build_transcription_args(
            model_file, audio_file, audio_file.with_name("call-transcript"), Language.EN
        )

    def test_nonzero_exit_is_failure(self, qtbot, orchestrator, runner, audio_file, model_file):
        runner.results["whisper-cli"] = write_transcript("ggml error", exit_code=3)
        orchestrator.choose_audio_file(audio_file)

        orchestrator.transcribe_last_audio(MEDIUM)
        qtbot.waitUntil(lambda: not orchestrator.state.is_transcribing, timeout=WAIT_MS)

        state = orchestrator.state
        assert state.last_transcript_path is None
        assert isinstance(state.last_error, SessionError)
        assert "exit code 3" in state.status
        assert state.last_transcriber_log == "ggml error"

    def test_missing_transcript_is_failure(
        self, qtbot, orchestrator, runner, audio_file, model_file
    ):
        runner.results["whisper-cli"] = ProcessResult(output="", exit_code=0)
        orchestrator.choose_audio_file(audio_file)

        orchestrator.transcribe_last_audio(MEDIUM)
        qtbot.waitUntil(lambda: not orchestrator.state.is_transcribing, timeout=WAIT_MS)

        state = orchestrator.state
        assert state.last_transcript_path is None
        assert isinstance(state.last_error, SessionError)
        assert state.last_transcriber_log == "No output from transcriber."

    def test_transcribe_twice_runs_once(
        self, qtbot, orchestrator, runner, audio_file, model_file
    ):
        orchestrator.choose_audio_file(audio_file)

        assert orchestrator.transcribe_last_audio(MEDIUM)
        assert orchestrator.transcribe_last_audio(MEDIUM) is False

        qtbot.waitUntil(lambda: not orchestrator.state.is_transcribing, timeout=WAIT_MS)
        assert len(runner.runs) == 1

    def test_transcribe_after_recording(self, qtbot, orchestrator, runner, model_file):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup", append_timestamp=False)
        orchestrator.stop_recording()
        qtbot.waitUntil(lambda: not orchestrator.state.is_recording, timeout=WAIT_MS)

        assert orchestrator.transcribe_last_audio(MEDIUM)
        qtbot.waitUntil(lambda: not orchestrator.state.is_transcribing, timeout=WAIT_MS)

        assert orchestrator.state.last_transcript_path.name == "standup-transcript.txt"


class TestModelDownload:
    def test_existing_model(self, orchestrator, downloader, model_file):
        assert orchestrator.ensure_model(MEDIUM)
        assert downloader.calls == 0
        assert not orchestrator.state.is_downloading

    def test_download(self, qtbot, orchestrator, downloader, output_folder):
        with qtbot.waitSignal(orchestrator.download_progress, timeout=WAIT_MS):
            assert orchestrator.ensure_model(MEDIUM)
        qtbot.waitUntil(lambda: not orchestrator.state.is_downloading, timeout=WAIT_MS)

        assert downloader.calls == 1
        assert MEDIUM.local_path(output_folder).is_file()
        assert orchestrator.state.download_status == "Model ready: ggml-medium.bin"

    def test_download_error(self, qtbot, orchestrator, downloader):
        downloader.error = DownloadError("HTTP 404")

        orchestrator.ensure_model(MEDIUM)
        qtbot.waitUntil(lambda: not orchestrator.state.is_downloading, timeout=WAIT_MS)

        assert isinstance(orchestrator.state.last_error, DownloadError)
        assert orchestrator.state.download_status == "Download failed: HTTP 404"

    def test_download_error_is_logged(self, qtbot, orchestrator, downloader):
        downloader.error = DownloadError("HTTP 404")

        with patch("listentranscriber.core.session.workers.logger") as mock_logger:
            orchestrator.ensure_model(MEDIUM)
            qtbot.waitUntil(
                lambda: not orchestrator.state.is_downloading, timeout=WAIT_MS
            )

        mock_logger.exception.assert_called_once()
        assert "HTTP 404" in mock_logger.exception.call_args[0][0]

    def test_second_download_rejected(self, qtbot, orchestrator, downloader):
        assert orchestrator.ensure_model(MEDIUM)
        assert orchestrator.ensure_model(ModelSpec(ModelSize.SMALL)) is False
        qtbot.waitUntil(lambda: not orchestrator.state.is_downloading, timeout=WAIT_MS)
        assert downloader.calls == 1


class TestOutputFolder:
    def test_set_output_folder(self, qtbot, orchestrator, tmp_path):
        target = tmp_path / "elsewhere"

        with qtbot.waitSignal(orchestrator.output_folder_changed) as blocker:
            assert orchestrator.set_output_folder(target)

        assert blocker.args == [str(target)]
        assert orchestrator.state.output_folder == target
        assert (target / "models").is_dir()

    def test_rejected_while_recording(self, orchestrator, tmp_path):
        orchestrator.set_device_index(1)
        orchestrator.start_recording("standup")

        assert orchestrator.set_output_folder(tmp_path / "elsewhere") is False
        assert isinstance(orchestrator.state.last_error, PreconditionError)
