from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List

from ...config import MODEL_BASE_URL
from ..naming import PathLike, models_dir


class ModelSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class Language(str, Enum):
    AUTO = "auto"
    ES = "es"
    EN = "en"

    @property
    def display_name(self) -> str:
        return {
            Language.AUTO: "Auto",
            Language.ES: "Español",
            Language.EN: "English",
        }[self]


@dataclass(frozen=True)
class ModelSpec:
    size: ModelSize

    @property
    def file_name(self) -> str:
        return f"ggml-{self.size.value}.bin"

    @property
    def url(self) -> str:
        return f"{MODEL_BASE_URL}/{self.file_name}"

    def local_path(self, output_folder: PathLike) -> Path:
        return models_dir(output_folder) / self.file_name


AVAILABLE_MODELS: List[ModelSpec] = [ModelSpec(size) for size in ModelSize]


def is_model_downloaded(spec: ModelSpec, output_folder: PathLike) -> bool:
    return spec.local_path(output_folder).is_file()
