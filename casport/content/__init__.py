"""
Content addressing: hashes, items and the content-addressed store.
"""

from casport.content.addresser import HASH_FUNCTIONS, ContentAddresser, compute_hash
from casport.content.store import ContentStore
from casport.content.types import CAS_PREFIX, ContentHash, ContentItem, ContentMetadata

__all__ = [
    "CAS_PREFIX",
    "HASH_FUNCTIONS",
    "ContentAddresser",
    "ContentHash",
    "ContentItem",
    "ContentMetadata",
    "ContentStore",
    "compute_hash",
]
