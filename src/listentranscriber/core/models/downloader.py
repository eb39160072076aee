import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import requests

from ...config import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_TIMEOUT_SECONDS
from ...utils.logger import get_logger
from ..errors import DownloadError
from ..naming import PathLike
from .registry import ModelSpec

ProgressCallback = Callable[[int, int], None]


class ModelDownloader:
    """
    Fetches GGML model files for whisper.cpp.

    The file is streamed into a temporary file next to its destination and
    moved into place only once complete, so the final path either holds the
    whole model or does not exist.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self._cancelled = False
        self._session = session or requests.Session()
        self._logger = get_logger(__name__)

    def download(
        self,
        spec: ModelSpec,
        target_dir: PathLike,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bool:
        target_dir = Path(target_dir)
        target = target_dir / spec.file_name
        if target.is_file():
            self._logger.info(f"Model already present: {target}")
            return True

        if self._cancelled:
            self._logger.info("Download cancelled before it started")
            return False

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(f"Could not create {target_dir}: {e}") from e

        self._logger.info(f"Downloading model from {spec.url}")

        tmp_path: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                dir=target_dir,
                prefix=f".{spec.file_name}.",
                suffix=".part",
                delete=False,
            ) as tmp_file:
                tmp_path = tmp_file.name

                with self._session.get(
                    spec.url, stream=True, timeout=DOWNLOAD_TIMEOUT_SECONDS
                ) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("content-length", 0))
                    downloaded = 0

                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if self._cancelled:
                            self._logger.info("Download cancelled")
                            return False
                        if not chunk:
                            continue

                        tmp_file.write(chunk)
                        downloaded += len(chunk)

                        if on_progress:
                            on_progress(downloaded, total_size)

                if total_size and downloaded != total_size:
                    raise DownloadError(
                        f"Incomplete download of {spec.file_name}: "
                        f"{downloaded} of {total_size} bytes"
                    )

            os.replace(tmp_path, target)
            tmp_path = None
            self._logger.info(f"Model {spec.file_name} saved to {target}")
            return True

        except requests.RequestException as e:
            self._logger.error(f"Download failed: {e}")
            raise DownloadError(f"Download of {spec.file_name} failed: {e}") from e
        except OSError as e:
            self._logger.error(f"Could not save model: {e}")
            raise DownloadError(f"Could not save {spec.file_name}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def cancel(self) -> None:
        """Abort the current or next download. A downloader is used once."""
        self._cancelled = True
