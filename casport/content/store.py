"""
Content-addressed store on top of a StorageProvider.

Callers hand in bytes and get back the ContentHash that identifies them;
identical bytes are stored once no matter how often they are stored.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from casport.content.addresser import ContentAddresser
from casport.content.types import ContentHash, ContentItem, ContentMetadata
from casport.core.logger import get_logger
from casport.storage.core.errors import IntegrityError

if TYPE_CHECKING:
    from casport.storage.base import StorageProvider

logger = get_logger(__name__)


class ContentStore:
    """
    Store and retrieve blobs by content hash.

    Metadata recorded at store time (content type, creation time) is kept in
    memory; content written by other processes gets metadata derived from
    the provider on demand.

    Usage:
        >>> store = ContentStore(InMemoryStorageProvider())
        >>> h = await store.store(b"hello", content_type="text/plain")
        >>> item = await store.retrieve(h)
        >>> item.data
        b'hello'
    """

    def __init__(self, provider: StorageProvider, algorithm: str = "sha256"):
        self.provider = provider
        self.addresser = ContentAddresser(algorithm)
        self._metadata: dict[ContentHash, ContentMetadata] = {}

    async def store(self, data: bytes, content_type: str | None = None) -> ContentHash:
        """Hash ``data`` and write it unless the provider already has it."""
        content_hash = self.addresser.hash(data)

        if await self.provider.exists(content_hash):
            logger.debug(f"Content {content_hash.short} already stored")
        else:
            await self.provider.write(content_hash, data)
            logger.debug(f"Stored {content_hash.short} ({len(data)} bytes)")

        if content_hash not in self._metadata:
            self._metadata[content_hash] = ContentMetadata(
                hash=content_hash,
                size=len(data),
                content_type=content_type,
            )
        return content_hash

    async def retrieve(self, content_hash: ContentHash) -> ContentItem:
        """
        Read and verify the blob stored under ``content_hash``.

        Raises:
            NotFoundError: If the hash is not stored
            IntegrityError: If the stored bytes do not match the hash
        """
        data = await self.provider.read(content_hash)
        if not self.addresser.verify(data, content_hash):
            actual = None
            if ContentAddresser.supports(content_hash.algorithm):
                actual = str(ContentAddresser(content_hash.algorithm).hash(data))
            raise IntegrityError(
                f"Stored bytes for {content_hash} do not match their hash",
                expected=str(content_hash),
                actual=actual,
            )

        metadata = self._metadata.get(content_hash) or ContentMetadata(
            hash=content_hash, size=len(data)
        )
        return ContentItem(hash=content_hash, data=data, metadata=metadata)

    async def exists(self, content_hash: ContentHash) -> bool:
        return await self.provider.exists(content_hash)

    async def get_metadata(self, content_hash: ContentHash) -> ContentMetadata:
        """
        Raises:
            NotFoundError: If the hash is not stored
        """
        size = await self.provider.size(content_hash)
        known = self._metadata.get(content_hash)
        if known is not None:
            return known
        return ContentMetadata(hash=content_hash, size=size)

    async def list_content(self) -> list[ContentMetadata]:
        """Metadata for every stored blob, oldest known first."""
        result = [await self.get_metadata(h) for h in await self.provider.list()]
        result.sort(key=lambda m: m.created_at)
        return result

    async def search(self, term: str) -> list[ContentMetadata]:
        """Case-insensitive substring match on hash value or content type."""
        term = term.lower()
        return [
            m
            for m in await self.list_content()
            if term in m.hash.value or (m.content_type and term in m.content_type.lower())
        ]
