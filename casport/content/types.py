"""
Content-addressing value types.

A ``ContentHash`` is the sole identity of a stored blob: two hashes are equal
iff their algorithm and hex value match, and storing identical bytes twice
always yields the same hash.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

CAS_PREFIX = "cas"


@dataclass(frozen=True)
class ContentHash:
    """
    Content identifier (digest of a blob's bytes).

    Attributes:
        algorithm: Digest algorithm name, e.g. "sha256"
        value: Lowercase hex digest
    """

    algorithm: str
    value: str

    def __post_init__(self) -> None:
        if not self.algorithm or "/" in self.algorithm or ":" in self.algorithm:
            msg = f"Invalid hash algorithm: {self.algorithm!r}"
            raise ValueError(msg)
        if not self.value or any(c not in "0123456789abcdef" for c in self.value):
            msg = f"Invalid hex digest: {self.value!r}"
            raise ValueError(msg)

    @property
    def path(self) -> str:
        """Storage key layout: cas/<algorithm>/<value>."""
        return f"{CAS_PREFIX}/{self.algorithm}/{self.value}"

    @property
    def short(self) -> str:
        """Abbreviated form for log lines."""
        return f"{self.algorithm}:{self.value[:12]}"

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.value}"

    @classmethod
    def from_path(cls, path: str) -> ContentHash:
        """Parse a ``cas/<algorithm>/<value>`` storage key."""
        parts = path.strip("/").split("/")
        if len(parts) != 3 or parts[0] != CAS_PREFIX:
            msg = f"Not a content-addressed path: {path!r}"
            raise ValueError(msg)
        return cls(algorithm=parts[1], value=parts[2].lower())

    @classmethod
    def parse(cls, text: str) -> ContentHash:
        """
        Parse either ``<algorithm>:<value>`` or a ``cas/...`` path.

        A bare hex digest is taken to be sha256.
        """
        text = text.strip()
        if text.startswith(f"{CAS_PREFIX}/"):
            return cls.from_path(text)
        if ":" in text:
            algorithm, _, value = text.partition(":")
            return cls(algorithm=algorithm, value=value.lower())
        return cls(algorithm="sha256", value=text.lower())

    def to_dict(self) -> dict[str, str]:
        return {"algorithm": self.algorithm, "value": self.value}


@dataclass(frozen=True)
class ContentMetadata:
    """Size and descriptive data for a stored blob."""

    hash: ContentHash
    size: int
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    content_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash.to_dict(),
            "size": self.size,
            "created_at": self.created_at.isoformat(),
            "content_type": self.content_type,
        }


@dataclass(frozen=True)
class ContentItem:
    """
    A blob together with its identity and metadata.

    Owned by whichever provider currently holds it; the migration engine only
    keeps one alive for the duration of a single transfer.
    """

    hash: ContentHash
    data: bytes
    metadata: ContentMetadata

    @property
    def size(self) -> int:
        return self.metadata.size

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        content_type: str | None = None,
        algorithm: str = "sha256",
    ) -> ContentItem:
        """Build an item by hashing ``data``."""
        from casport.content.addresser import ContentAddresser

        content_hash = ContentAddresser(algorithm).hash(data)
        return cls.with_hash(content_hash, data, content_type=content_type)

    @classmethod
    def with_hash(
        cls,
        content_hash: ContentHash,
        data: bytes,
        content_type: str | None = None,
    ) -> ContentItem:
        """Build an item for bytes whose hash is already known."""
        return cls(
            hash=content_hash,
            data=data,
            metadata=ContentMetadata(
                hash=content_hash,
                size=len(data),
                content_type=content_type,
            ),
        )
