"""
Pytest configuration for Qt-based tests.

Provides fixtures for proper Qt object cleanup between tests to prevent segfaults.
"""
import pytest
from PySide6.QtWidgets import QApplication


@pytest.fixture(autouse=True)
def cleanup_qt_objects(qtbot, request):
    """
    Process pending events after each test so deferred deletes of worker
    threads run before the next test starts.
    """
    yield

    app = QApplication.instance()
    if app:
        app.processEvents()


DEVICE_LISTING = """\
ffmpeg version 6.1 Copyright (c) 2000-2023 the FFmpeg developers
[AVFoundation indev @ 0x7f8] AVFoundation video devices:
[AVFoundation indev @ 0x7f8] [0] FaceTime HD Camera
[AVFoundation indev @ 0x7f8] [1] Capture screen 0
[AVFoundation indev @ 0x7f8] AVFoundation audio devices:
[AVFoundation indev @ 0x7f8] [0] MacBook Pro Microphone
[AVFoundation indev @ 0x7f8] [1] BlackHole 2ch
[AVFoundation indev @ 0x7f8] [2] Aggregate Device
: Input/output error
"""


@pytest.fixture
def device_listing():
    return DEVICE_LISTING
