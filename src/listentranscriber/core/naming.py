"""
Filesystem names and paths for recordings, transcripts and models.

All names are derived deterministically from the user's input so the same
base name always maps to the same files. Uniqueness is only guaranteed when a
timestamp is appended.
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..config import DEFAULT_RECORDING_NAME, MODELS_FOLDER_NAME

PathLike = Union[str, os.PathLike]

_INVALID_CHARS = re.compile(r"[^a-z0-9_-]")
_DASH_RUNS = re.compile(r"-{2,}")

TRANSCRIPT_SUFFIX = "-transcript"
TRANSCRIPT_EXTENSION = ".txt"
AUDIO_EXTENSION = ".wav"


@dataclass(frozen=True)
class RecordingPaths:
    audio_path: Path
    transcript_base_path: Path


def sanitize_base_name(text: str) -> str:
    cleaned = _INVALID_CHARS.sub("-", (text or "").lower())
    collapsed = _DASH_RUNS.sub("-", cleaned)
    return collapsed.strip("-_")


def filesystem_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with ':' replaced so it is safe in file names."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.astimezone()
    stamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return stamp.replace(":", "-")


def build_recording_name(
    base: str, append_timestamp: bool, now: Optional[datetime] = None
) -> str:
    raw = base if base and base.strip() else DEFAULT_RECORDING_NAME
    safe_base = sanitize_base_name(raw) or DEFAULT_RECORDING_NAME
    if not append_timestamp:
        return safe_base
    return f"{safe_base}-{filesystem_timestamp(now)}"


def models_dir(output_folder: PathLike) -> Path:
    return Path(output_folder).expanduser() / MODELS_FOLDER_NAME


def ensure_output_dirs(output_folder: PathLike) -> Path:
    folder = Path(output_folder).expanduser()
    folder.mkdir(parents=True, exist_ok=True)
    models_dir(folder).mkdir(parents=True, exist_ok=True)
    return folder


def transcript_base_for(audio_path: PathLike) -> Path:
    audio = Path(audio_path)
    return audio.with_name(audio.stem + TRANSCRIPT_SUFFIX)


def transcript_path_for(transcript_base_path: PathLike) -> Path:
    base = Path(transcript_base_path)
    return base.with_name(base.name + TRANSCRIPT_EXTENSION)


def resolve_paths(output_folder: PathLike, recording_name: str) -> RecordingPaths:
    folder = ensure_output_dirs(output_folder)
    audio_path = folder / f"{recording_name}{AUDIO_EXTENSION}"
    return RecordingPaths(
        audio_path=audio_path,
        transcript_base_path=transcript_base_for(audio_path),
    )
