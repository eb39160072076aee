"""
Settings management with JSON persistence.

Handles loading, saving, and validating application settings.
Uses platformdirs for cross-platform directory resolution.
"""

import json
from pathlib import Path
from typing import Optional, Tuple

from platformdirs import user_config_path
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...config import (
    APP_NAME,
    CAPTURE_FORMAT,
    DEFAULT_OUTPUT_FOLDER,
    STOP_TIMEOUT_SECONDS,
)
from ...utils.logger import get_logger
from ..models.registry import Language, ModelSize

logger = get_logger(__name__)


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


def get_settings_file() -> Path:
    return get_config_dir() / "settings.json"


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False, use_enum_values=False)

    output_folder: str = DEFAULT_OUTPUT_FOLDER

    recording_name: str = ""
    append_timestamp: bool = True
    include_microphone: bool = False

    model_size: ModelSize = ModelSize.MEDIUM
    language: Language = Language.AUTO
    use_gpu: bool = False

    capture_binary: Optional[str] = None
    transcribe_binary: Optional[str] = None
    capture_format: str = CAPTURE_FORMAT
    stop_timeout_seconds: float = Field(default=STOP_TIMEOUT_SECONDS, gt=0, le=60)

    window_geometry: Optional[Tuple[int, int, int, int]] = None

    @field_validator("output_folder")
    @classmethod
    def output_folder_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("output_folder must be a non-empty string")
        return v

    @field_validator("capture_format")
    @classmethod
    def capture_format_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("capture_format must be a non-empty string")
        return v

    @property
    def output_path(self) -> Path:
        return Path(self.output_folder).expanduser()

    @classmethod
    def load(cls) -> "Settings":
        config_file = get_settings_file()

        if not config_file.exists():
            return cls()

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not load settings: {e}. Using defaults.", exc_info=True)
            return cls()

        if not isinstance(data, dict):
            logger.warning("Settings file does not hold an object. Using defaults.")
            return cls()

        # Filter to valid keys only
        valid_keys = cls.model_fields.keys()
        filtered_data = {k: v for k, v in data.items() if k in valid_keys}

        return cls._load_with_fallbacks(filtered_data)

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name not in data:
                continue
            try:
                validated = cls.model_validate(
                    {**defaults.model_dump(), field_name: data[field_name]}
                )
                result_data[field_name] = getattr(validated, field_name)
            except Exception:
                default_val = getattr(defaults, field_name)
                logger.warning(
                    f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                )

        return cls(**result_data)

    def save(self) -> None:
        config_file = get_settings_file()

        data = self.model_dump(mode="json")

        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.load()
    return _settings_instance
