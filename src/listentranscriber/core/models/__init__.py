from .downloader import ModelDownloader
from .registry import (
    AVAILABLE_MODELS,
    Language,
    ModelSize,
    ModelSpec,
    is_model_downloaded,
)

__all__ = [
    "ModelDownloader",
    "ModelSpec",
    "ModelSize",
    "Language",
    "AVAILABLE_MODELS",
    "is_model_downloaded",
]
