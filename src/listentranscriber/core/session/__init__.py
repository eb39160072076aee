from .orchestrator import (
    SELECT_FIRST,
    SELECT_PREFERRED,
    SessionOrchestrator,
    build_capture_args,
    build_device_listing_args,
    build_transcription_args,
)
from .state import SessionPhase, SessionState
from .workers import (
    DeviceListingThread,
    ModelDownloadThread,
    StopCaptureThread,
    TranscriptionThread,
)

__all__ = [
    "SessionOrchestrator",
    "SessionPhase",
    "SessionState",
    "SELECT_FIRST",
    "SELECT_PREFERRED",
    "build_capture_args",
    "build_device_listing_args",
    "build_transcription_args",
    "DeviceListingThread",
    "ModelDownloadThread",
    "StopCaptureThread",
    "TranscriptionThread",
]
