"""
Filesystem Storage Provider

Local directory implementation. Blobs are stored one file per hash:

    base_path/
    └── cas/
        ├── sha256/
        │   ├── {hex digest}
        │   └── ...
        └── blake2b/
            └── ...

Writes go to a temporary file in the same directory and are renamed into
place, so a crash never leaves a partially written blob under its final name.

Example:
    >>> provider = FilesystemStorageProvider("./blobs")
    >>> async with provider:
    ...     await provider.write(h, data)
"""

from __future__ import annotations

import errno
import uuid
from pathlib import Path

import aiofiles
import aiofiles.os

from casport.content.types import CAS_PREFIX, ContentHash
from casport.storage.base import StorageProvider
from casport.storage.core.errors import NotFoundError, QuotaExceededError, StorageIOError
from casport.storage.core.health import StorageStatistics

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}
_TMP_SUFFIX = ".tmp"


class FilesystemStorageProvider(StorageProvider):
    """
    Directory-backed content-addressed provider.

    Attributes:
        base_path: Root directory (created on first use)
    """

    def __init__(self, base_path: str | Path = "./casport-data", name: str | None = None):
        """
        Args:
            base_path: Root directory for blobs
            name: Display name (defaults to "file://<base_path>")
        """
        self.base_path = Path(base_path)
        super().__init__(name=name or f"file://{self.base_path}")
        self.cas_dir = self.base_path / CAS_PREFIX

    def _blob_path(self, content_hash: ContentHash) -> Path:
        return self.base_path / content_hash.path

    def _translate(self, error: OSError, operation: str, content_hash: ContentHash | None = None):
        item_id = content_hash.path if content_hash else None
        if error.errno in _QUOTA_ERRNOS:
            return QuotaExceededError(f"{self.name} is full: {error}", item_id=item_id)
        return StorageIOError(
            f"{operation} failed: {error}",
            operation=operation,
            item_id=item_id,
            provider=self.name,
        )

    async def write(self, content_hash: ContentHash, data: bytes) -> None:
        target = self._blob_path(content_hash)
        if await aiofiles.os.path.exists(target):
            return

        tmp_path = target.with_name(f"{target.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(bytes(data))
            await aiofiles.os.replace(tmp_path, target)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise self._translate(e, "write", content_hash) from e

        self._logger.debug(f"Wrote {content_hash.short} ({len(data)} bytes) to {target}")

    async def read(self, content_hash: ContentHash) -> bytes:
        try:
            async with aiofiles.open(self._blob_path(content_hash), "rb") as f:
                return await f.read()
        except FileNotFoundError:
            raise NotFoundError(
                f"Content {content_hash} not found",
                item_id=content_hash.path,
                provider=self.name,
            ) from None
        except OSError as e:
            raise self._translate(e, "read", content_hash) from e

    async def exists(self, content_hash: ContentHash) -> bool:
        return await aiofiles.os.path.isfile(self._blob_path(content_hash))

    async def list(self) -> list[ContentHash]:
        if not await aiofiles.os.path.isdir(self.cas_dir):
            return []

        hashes: list[ContentHash] = []
        try:
            for algorithm in await aiofiles.os.listdir(self.cas_dir):
                algorithm_dir = self.cas_dir / algorithm
                if not await aiofiles.os.path.isdir(algorithm_dir):
                    continue
                for entry in await aiofiles.os.listdir(algorithm_dir):
                    if entry.endswith(_TMP_SUFFIX):
                        continue
                    try:
                        hashes.append(ContentHash(algorithm=algorithm, value=entry))
                    except ValueError:
                        self._logger.warning(f"Ignoring foreign file {algorithm_dir / entry}")
        except OSError as e:
            raise self._translate(e, "list") from e

        return hashes

    async def delete(self, content_hash: ContentHash) -> None:
        try:
            await aiofiles.os.remove(self._blob_path(content_hash))
        except FileNotFoundError:
            return
        except OSError as e:
            raise self._translate(e, "delete", content_hash) from e

    async def size(self, content_hash: ContentHash) -> int:
        try:
            stat = await aiofiles.os.stat(self._blob_path(content_hash))
        except FileNotFoundError:
            raise NotFoundError(
                f"Content {content_hash} not found",
                item_id=content_hash.path,
                provider=self.name,
            ) from None
        except OSError as e:
            raise self._translate(e, "stat", content_hash) from e
        return stat.st_size

    async def get_statistics(self) -> StorageStatistics:
        hashes = await self.list()
        total = 0
        for content_hash in hashes:
            total += await self.size(content_hash)
        return StorageStatistics(item_count=len(hashes), total_bytes=total)
