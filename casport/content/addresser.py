"""
Content addressing.

Every piece of data is identified by its cryptographic hash. Hashing is a
pure function: the same bytes always produce the same ContentHash.
"""

import hashlib
from collections.abc import Callable

from casport.content.types import ContentHash

HASH_FUNCTIONS: dict[str, Callable] = {
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
    "sha3_256": hashlib.sha3_256,
    "blake2b": hashlib.blake2b,
}

DEFAULT_ALGORITHM = "sha256"


class ContentAddresser:
    """
    Computes deterministic content hashes.

    Example:
        >>> addresser = ContentAddresser()
        >>> h = addresser.hash(b"hello")
        >>> h.path
        'cas/sha256/2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM):
        """
        Args:
            algorithm: One of sha256, sha512, sha3_256, blake2b

        Raises:
            ValueError: If the algorithm is not supported
        """
        if algorithm not in HASH_FUNCTIONS:
            supported = ", ".join(sorted(HASH_FUNCTIONS))
            msg = f"Unsupported hash algorithm: {algorithm} (supported: {supported})"
            raise ValueError(msg)

        self.algorithm = algorithm
        self._hash_func = HASH_FUNCTIONS[algorithm]

    def hash(self, data: bytes) -> ContentHash:
        """Compute the ContentHash of ``data``."""
        return ContentHash(
            algorithm=self.algorithm,
            value=self._hash_func(bytes(data)).hexdigest(),
        )

    def verify(self, data: bytes, content_hash: ContentHash) -> bool:
        """
        Check that ``data`` hashes to ``content_hash``.

        The digest is recomputed with the hash's own algorithm, so an
        addresser configured for sha256 can still verify blake2b content.
        """
        hash_func = HASH_FUNCTIONS.get(content_hash.algorithm)
        if hash_func is None:
            return False
        return hash_func(bytes(data)).hexdigest() == content_hash.value

    @staticmethod
    def supports(algorithm: str) -> bool:
        return algorithm in HASH_FUNCTIONS


def compute_hash(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> ContentHash:
    """Convenience wrapper around ContentAddresser(algorithm).hash(data)."""
    return ContentAddresser(algorithm).hash(data)
