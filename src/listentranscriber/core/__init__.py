from .errors import DownloadError, LaunchError, PreconditionError, SessionError

__all__ = [
    "SessionError",
    "LaunchError",
    "PreconditionError",
    "DownloadError",
]
