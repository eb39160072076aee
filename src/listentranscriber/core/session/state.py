from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import List, Optional

from ..devices import AudioDevice
from ..errors import SessionError
from ..process import ManagedProcess


class SessionPhase(Enum):
    IDLE = auto()
    RECORDING = auto()
    TRANSCRIBING = auto()


@dataclass
class SessionState:
    """
    Mutable session data owned by SessionOrchestrator.

    Only the orchestrator writes to it, always from the GUI thread.
    ``is_recording`` is derived from the capture handle so the two can never
    disagree.
    """

    output_folder: Path
    include_microphone: bool = False
    selected_device_index: Optional[int] = None
    selected_device_id: Optional[str] = None
    devices: List[AudioDevice] = field(default_factory=list)

    capture_handle: Optional[ManagedProcess] = None
    is_stopping: bool = False
    is_transcribing: bool = False
    is_detecting: bool = False
    is_downloading: bool = False

    last_audio_path: Optional[Path] = None
    last_transcript_path: Optional[Path] = None
    last_transcriber_log: str = ""

    status: str = "Ready."
    download_status: str = ""
    last_error: Optional[SessionError] = None

    @property
    def is_recording(self) -> bool:
        return self.capture_handle is not None

    @property
    def phase(self) -> SessionPhase:
        if self.is_recording:
            return SessionPhase.RECORDING
        if self.is_transcribing:
            return SessionPhase.TRANSCRIBING
        return SessionPhase.IDLE
