"""
Object storage for assembled audio.

The core only needs put and delete by key. LocalFileStorage keeps objects
under a directory on disk; any other backend (S3, R2, ...) only has to
satisfy the Storage protocol.
"""
import asyncio
import functools
import logging
from pathlib import Path
from typing import Protocol

from narrator.errors import StorageError, UploadError

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Durable object store contract."""

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store data under key, replacing any existing object. Raises UploadError."""

    async def delete(self, key: str) -> None:
        """Remove the object under key. A missing key is not an error. Raises StorageError."""


class LocalFileStorage:
    """
    Stores objects as files below a base directory.

    Blocking file operations run in the default executor so the event loop
    stays free while large files are written.
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def path_for(self, key: str) -> Path:
        """Resolve a key to its file path, rejecting keys that escape base_dir."""
        base = self.base_dir.resolve()
        path = (base / key).resolve()
        if path == base or base not in path.parents:
            raise ValueError(f'Invalid storage key: {key!r}')
        return path

    def _put_sync(self, key: str, data: bytes):
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a temp file then rename so readers never see a partial file
        tmp = path.with_name(path.name + '.tmp')
        try:
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def _delete_sync(self, key: str):
        self.path_for(key).unlink(missing_ok=True)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, functools.partial(self._put_sync, key, data))
        except (OSError, ValueError) as e:
            raise UploadError(f'Failed to store {key}: {e}') from e
        logger.info('Stored %s (%d bytes, %s)', key, len(data), content_type)

    async def delete(self, key: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, functools.partial(self._delete_sync, key))
        except (OSError, ValueError) as e:
            raise StorageError(f'Failed to delete {key}: {e}') from e
        logger.debug('Deleted %s', key)

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()
