"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging

APP_NAME = "listentranscriber"  # Config and log directory name

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "DEBUG"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# CAPTURE SETTINGS
# =============================================================================
CAPTURE_BINARY = "ffmpeg"
CAPTURE_FORMAT = "avfoundation"
SAMPLE_RATE = 16000  # whisper.cpp only accepts 16 kHz input
CHANNELS = 1
CAPTURE_POLL_INTERVAL_MS = 1000  # How often the capture process is checked
STOP_TIMEOUT_SECONDS = 5.0
# =============================================================================

# =============================================================================
# TRANSCRIPTION SETTINGS
# =============================================================================
TRANSCRIBE_BINARY = "whisper-cli"
MODEL_BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"
DOWNLOAD_CHUNK_SIZE = 64 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 30
# =============================================================================

# =============================================================================
# OUTPUT SETTINGS
# =============================================================================
DEFAULT_OUTPUT_FOLDER = "~/Downloads/Transcripts"
DEFAULT_RECORDING_NAME = "meeting"
MODELS_FOLDER_NAME = "models"
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
