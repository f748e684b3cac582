"""Tests for HashService and the deterministic JSON helper."""

import hashlib
import time

import pytest

from hash_service import HashService, sha256_hex, stringify_ordered
from utils.error_handler import HashGenerationError, HashTimeoutError


class TestHelpers:
    def test_sha256_hex_matches_hashlib(self):
        data = b"x" * (3 * 1024 * 1024 + 17)  # Spans several chunks
        assert sha256_hex(data) == hashlib.sha256(data).hexdigest()

    def test_text_hashed_as_utf8(self):
        assert sha256_hex("héllo") == hashlib.sha256("héllo".encode("utf-8")).hexdigest()

    def test_stringify_sorts_keys_recursively(self):
        assert stringify_ordered({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'


class TestHashService:
    @pytest.mark.asyncio
    async def test_hash_bytes(self):
        digest = await HashService().hash_bytes(b"evidence")
        assert digest == hashlib.sha256(b"evidence").hexdigest()
        assert len(digest) == 64

    @pytest.mark.asyncio
    async def test_json_key_order_irrelevant(self):
        service = HashService()
        first = await service.hash_json({"url": "https://example.com", "title": "Example"})
        second = await service.hash_json({"title": "Example", "url": "https://example.com"})
        assert first == second

    @pytest.mark.asyncio
    async def test_signature_order_irrelevant(self):
        service = HashService()
        assert await service.hash_signature(["b", "a", "c"]) == await service.hash_signature(["c", "b", "a"])
        assert await service.hash_signature(["a", "b"]) == sha256_hex("a\nb")

    @pytest.mark.asyncio
    async def test_combined(self):
        service = HashService()
        assert await service.hash_combined("aa", "bb") == sha256_hex("aabb")

    @pytest.mark.asyncio
    async def test_combined_rejects_empty(self):
        with pytest.raises(HashGenerationError):
            await HashService().hash_combined("aa", "")

    @pytest.mark.asyncio
    async def test_unhashable_input(self):
        with pytest.raises(HashGenerationError):
            await HashService().hash_bytes(12345)

    @pytest.mark.asyncio
    async def test_timeout(self, monkeypatch):
        def slow(data):
            time.sleep(0.2)
            return "never"

        monkeypatch.setattr("hash_service.sha256_hex", slow)
        with pytest.raises(HashTimeoutError) as exc_info:
            await HashService(timeout_ms=10).hash_bytes(b"big")

        assert exc_info.value.code == "HASH_TIMEOUT"
        assert exc_info.value.details["timeout_ms"] == 10
