"""Platform-specific helpers for the desktop shell."""

import platform
import subprocess
from pathlib import Path
from typing import Union

from PySide6.QtCore import QUrl
from PySide6.QtGui import QDesktopServices

from .logger import get_logger

logger = get_logger(__name__)

PRIVACY_PANE_URL = "x-apple.systempreferences:com.apple.preference.security?{pane}"
MICROPHONE_PANE = "Privacy_Microphone"
SCREEN_CAPTURE_PANE = "Privacy_ScreenCapture"


def get_platform() -> str:
    system = platform.system()
    if system == "Darwin":
        return "macos"
    return system.lower()


def open_folder(path: Union[str, Path]) -> bool:
    folder = Path(path).expanduser()
    folder.mkdir(parents=True, exist_ok=True)
    opened = QDesktopServices.openUrl(QUrl.fromLocalFile(str(folder)))
    if not opened:
        logger.warning(f"Could not open folder {folder}")
    return opened


def open_privacy_settings(pane: str) -> bool:
    """Open a macOS privacy pane. Returns False on other platforms."""
    if get_platform() != "macos":
        logger.info(f"Privacy settings pane {pane} is only available on macOS")
        return False

    result = subprocess.run(
        ["open", PRIVACY_PANE_URL.format(pane=pane)],
        check=False,
    )
    return result.returncode == 0
