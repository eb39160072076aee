from .runner import (
    ManagedProcess,
    ProcessResult,
    ProcessRunner,
    get_bundled_bin_dir,
    resolve_executable,
)

__all__ = [
    "ManagedProcess",
    "ProcessResult",
    "ProcessRunner",
    "get_bundled_bin_dir",
    "resolve_executable",
]
