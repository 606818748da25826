"""
Tests for content hashes and the ContentAddresser.
"""

import hashlib

import pytest

from casport.content.addresser import ContentAddresser, compute_hash
from casport.content.types import ContentHash, ContentItem


class TestContentAddresser:
    """Tests for hashing and verification."""

    def test_hash_is_deterministic(self):
        """Hashing the same bytes twice yields equal hashes."""
        addresser = ContentAddresser()
        for data in (b"", b"hello", bytes(range(256)) * 40):
            assert addresser.hash(data) == addresser.hash(data)

    def test_hash_matches_hashlib(self):
        h = ContentAddresser().hash(b"hello")

        assert h.algorithm == "sha256"
        assert h.value == hashlib.sha256(b"hello").hexdigest()

    def test_different_bytes_different_hashes(self):
        addresser = ContentAddresser()
        assert addresser.hash(b"a") != addresser.hash(b"b")

    @pytest.mark.parametrize("algorithm", ["sha512", "sha3_256", "blake2b"])
    def test_other_algorithms(self, algorithm):
        h = ContentAddresser(algorithm).hash(b"data")

        assert h.algorithm == algorithm
        assert h.value == getattr(hashlib, algorithm)(b"data").hexdigest()

    def test_unsupported_algorithm_raises(self):
        with pytest.raises(ValueError, match="Unsupported hash algorithm"):
            ContentAddresser("md4")

    def test_verify_uses_the_hash_algorithm(self):
        """A sha256 addresser can still verify blake2b content."""
        blake = ContentAddresser("blake2b").hash(b"payload")
        addresser = ContentAddresser("sha256")

        assert addresser.verify(b"payload", blake)
        assert not addresser.verify(b"tampered", blake)

    def test_verify_unknown_algorithm_is_false(self):
        assert not ContentAddresser().verify(b"x", ContentHash("whirlpool", "ab"))

    def test_compute_hash_wrapper(self):
        assert compute_hash(b"x") == ContentAddresser().hash(b"x")


class TestContentHash:
    """Tests for the ContentHash value type."""

    def test_equality_is_by_value(self):
        assert ContentHash("sha256", "ab12") == ContentHash("sha256", "ab12")
        assert ContentHash("sha256", "ab12") != ContentHash("sha512", "ab12")
        assert len({ContentHash("sha256", "ab12"), ContentHash("sha256", "ab12")}) == 1

    def test_is_immutable(self):
        h = ContentHash("sha256", "ab12")
        with pytest.raises(AttributeError):
            h.value = "cd34"

    def test_path_and_str(self):
        h = ContentHash("sha256", "ab12")

        assert h.path == "cas/sha256/ab12"
        assert str(h) == "sha256:ab12"

    def test_from_path_roundtrip(self):
        h = ContentAddresser().hash(b"x")
        assert ContentHash.from_path(h.path) == h

    def test_parse_forms(self):
        h = ContentAddresser().hash(b"x")

        assert ContentHash.parse(str(h)) == h
        assert ContentHash.parse(h.path) == h
        assert ContentHash.parse(h.value) == h
        assert ContentHash.parse(h.value.upper()) == h

    @pytest.mark.parametrize(
        ("algorithm", "value"),
        [("", "ab"), ("sha/256", "ab"), ("sha:256", "ab"), ("sha256", ""), ("sha256", "xyz")],
    )
    def test_invalid_values_raise(self, algorithm, value):
        with pytest.raises(ValueError):
            ContentHash(algorithm, value)

    def test_from_path_rejects_foreign_paths(self):
        with pytest.raises(ValueError, match="Not a content-addressed path"):
            ContentHash.from_path("blobs/sha256/ab")


class TestContentItem:
    """Tests for ContentItem construction."""

    def test_from_bytes(self):
        item = ContentItem.from_bytes(b"hello", content_type="text/plain")

        assert item.hash == ContentAddresser().hash(b"hello")
        assert item.size == 5
        assert item.metadata.content_type == "text/plain"
        assert item.metadata.created_at.tzinfo is not None

    def test_with_hash_keeps_given_hash(self):
        h = ContentHash("sha256", "ab")
        item = ContentItem.with_hash(h, b"abc")

        assert item.hash is h
        assert item.metadata.hash is h
        assert item.size == 3
