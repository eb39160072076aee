# Listen Transcriber - Record system audio and transcribe it locally

"""
Desktop application that records system audio (optionally with a microphone)
through ffmpeg and transcribes the recording with whisper.cpp.
"""

__version__ = "0.1.0"
__app_name__ = "Listen Transcriber"
