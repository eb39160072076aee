"""
Error types raised by the recording and transcription core.

Every error carries a human-readable message that the session orchestrator
shows verbatim in its status line.
"""


class SessionError(Exception):
    """Base class for failures surfaced to the user as a status message."""


class LaunchError(SessionError):
    """An external executable is missing or could not be spawned."""


class PreconditionError(SessionError):
    """An operation was requested before its requirements were met."""


class DownloadError(SessionError):
    """A model download failed because of a network or filesystem error."""
