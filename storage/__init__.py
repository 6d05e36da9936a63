"""Asset storage for uploaded model files.

This module provides:
- Validation of uploads against the allowed extension and size ceiling
- Streamed, chunked writes under a generated collision-resistant name
- Removal of stored files, confined to the storage root

A stored file is addressed by its reference, the URL path it is served
under (``/uploads/<name>``).
"""

import asyncio
import logging
import secrets
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Union

import aiofiles
import aiofiles.os

from config import settings_conf

logger = logging.getLogger(__name__)

URL_PREFIX = '/uploads'
NAME_ATTEMPTS = 3

class AssetError(Exception):
    """Base exception for asset storage errors."""
    pass

class InvalidAssetError(AssetError):
    """Raised when an upload has the wrong extension or is too large."""
    pass

class StorageFailureError(AssetError):
    """Raised when the file system refuses a write."""
    pass

def generate_name(extension: str) -> str:
    """Millisecond timestamp plus a random suffix, keeping the extension."""
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{extension}"

class AssetStore:
    """Stores uploaded model files on local disk."""

    def __init__(
        self,
        root: Union[str, Path, None] = None,
        max_bytes: Optional[int] = None,
        allowed_extension: Optional[str] = None,
        chunk_size: Optional[int] = None
    ):
        """Initialize the asset store.

        Args:
            root: Directory files are stored in, defaults to upload_root
            max_bytes: Largest accepted upload, defaults to max_upload_bytes
            allowed_extension: Accepted extension, defaults to allowed_extension
            chunk_size: Bytes read per chunk while streaming
        """
        self.root = Path(root or settings_conf['upload_root']).resolve()
        self.max_bytes = max_bytes or settings_conf['max_upload_bytes']
        self.allowed_extension = (allowed_extension or settings_conf['allowed_extension']).lower()
        self.chunk_size = chunk_size or settings_conf['upload_chunk_size']

    def ensure_root(self) -> Path:
        """Create the storage root if it is missing."""
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def validate(self, declared_name: Optional[str], declared_size: Optional[int] = None) -> str:
        """Check an upload's declared name and size before any bytes are written.

        Returns:
            The normalised extension

        Raises:
            InvalidAssetError: If the extension or size is not acceptable
        """
        extension = PurePosixPath(declared_name or '').suffix.lower()
        if extension != self.allowed_extension:
            raise InvalidAssetError(f"Only {self.allowed_extension} files are allowed")
        if declared_size is not None and declared_size > self.max_bytes:
            raise InvalidAssetError(f"File exceeds the {self.max_bytes} byte limit")
        return extension

    async def store(self, upload, declared_name: Optional[str]) -> str:
        """Persist an upload under a freshly generated name.

        Args:
            upload: Object with an async ``read(size)`` (e.g. fastapi.UploadFile)
            declared_name: The client supplied file name

        Returns:
            Reference to the stored file

        Raises:
            InvalidAssetError: If the extension is wrong or the stream is too large
            StorageFailureError: If the file cannot be written
        """
        extension = self.validate(declared_name, getattr(upload, 'size', None))

        try:
            self.ensure_root()
        except OSError as e:
            logger.error(f"Cannot create storage root {self.root}: {e}")
            raise StorageFailureError(f"Cannot create storage root: {e}")

        path = None
        try:
            for _ in range(NAME_ATTEMPTS):
                # Set before the open so a cancelled open is still cleaned up
                path = self.root / generate_name(extension)
                try:
                    handle = await aiofiles.open(path, 'xb')
                except FileExistsError:
                    path = None
                    continue
                break
            else:
                raise StorageFailureError("Could not allocate a unique file name")

            written = 0
            try:
                while True:
                    chunk = await upload.read(self.chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise InvalidAssetError(f"File exceeds the {self.max_bytes} byte limit")
                    await handle.write(chunk)
            finally:
                await handle.close()

        except (Exception, asyncio.CancelledError) as e:
            if path is not None:
                await self._discard(path)
            if isinstance(e, (AssetError, asyncio.CancelledError)):
                raise
            logger.error(f"Error writing upload {declared_name}: {e}")
            raise StorageFailureError(f"Failed to store file: {e}")

        reference = f"{URL_PREFIX}/{path.name}"
        logger.info(f"Stored {declared_name} as {reference} ({written} bytes)")
        return reference

    def path_for(self, reference: str) -> Path:
        """Resolve a reference to a path strictly inside the storage root.

        Raises:
            InvalidAssetError: If the reference would escape the root
        """
        name = reference or ''
        if name.startswith(URL_PREFIX + '/'):
            name = name[len(URL_PREFIX) + 1:]

        if not name or name in ('.', '..') or '/' in name or '\\' in name or '\x00' in name:
            raise InvalidAssetError(f"Invalid asset reference: {reference!r}")

        path = (self.root / name).resolve()
        if path.parent != self.root:
            raise InvalidAssetError(f"Invalid asset reference: {reference!r}")
        return path

    def exists(self, reference: str) -> bool:
        try:
            return self.path_for(reference).is_file()
        except InvalidAssetError:
            return False

    async def delete(self, reference: str) -> bool:
        """Remove a stored file.

        Returns:
            True if a file was removed, False if it was already gone

        Raises:
            InvalidAssetError: If the reference would escape the root
            StorageFailureError: If the file exists but cannot be removed
        """
        path = self.path_for(reference)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.info(f"File not found for deletion: {path}")
            return False
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
            raise StorageFailureError(f"Failed to delete file: {e}")

        logger.info(f"File deleted successfully: {path}")
        return True

    async def _discard(self, path: Path) -> None:
        """Remove a partial write; runs on error paths so it never raises."""
        try:
            await aiofiles.os.remove(path)
            logger.info(f"Removed partial upload {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error cleaning up partial upload {path}: {e}")

# Create global instance
asset_store = AssetStore()

def get_asset_store() -> AssetStore:
    """FastAPI dependency returning the asset store."""
    return asset_store

__all__ = [
    'AssetStore',
    'asset_store',
    'get_asset_store',
    'generate_name',
    'URL_PREFIX',
    'AssetError',
    'InvalidAssetError',
    'StorageFailureError'
]
