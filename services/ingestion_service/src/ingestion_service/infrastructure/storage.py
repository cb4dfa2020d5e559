from __future__ import annotations

from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from ingestion_service.domain.exceptions import BlobExistsError, StorageError
from ingestion_service.domain.interfaces import BlobStoragePort

logger = structlog.get_logger(__name__)


class LocalFileStorage(BlobStoragePort):
    """Filesystem-based blob storage.

    Paths are relative to ``base_path`` and namespaced by owner
    (``<owner_id>/<timestamp>_<name>``). Existing files are never overwritten.
    In production: replace with an object-store adapter implementing the same interface.
    """

    def __init__(self, base_path: str) -> None:
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        file_path = (self._base_path / path).resolve()
        if not file_path.is_relative_to(self._base_path):
            raise StorageError(f"path '{path}' escapes the storage root")
        return file_path

    async def put(self, path: str, content: bytes) -> str:
        file_path = self._resolve(path)

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "xb") as f:
                await f.write(content)
        except FileExistsError as exc:
            logger.warning("storage.write.exists", path=path)
            raise BlobExistsError(path) from exc
        except OSError as exc:
            logger.error("storage.write.failed", path=path, error=str(exc))
            raise StorageError(str(exc)) from exc

        logger.debug("storage.write.success", path=path, size_bytes=len(content))
        return path

    async def delete(self, path: str) -> None:
        file_path = self._resolve(path)
        try:
            await aiofiles.os.remove(file_path)
        except FileNotFoundError:
            logger.warning("storage.delete.missing", path=path)
            return
        except OSError as exc:
            logger.error("storage.delete.failed", path=path, error=str(exc))
            raise StorageError(str(exc)) from exc

        logger.debug("storage.delete.success", path=path)
