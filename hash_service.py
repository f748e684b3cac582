"""
Evidence Stitcher - Hash Service

SHA-256 hashing for captured images, HTML, metadata and DOM signatures.
Hashing runs in a worker thread and is bounded by the configured timeout so
a very large page cannot stall the event loop.
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import Any, Iterable, Union

from utils.error_handler import HashGenerationError, HashTimeoutError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


def sha256_hex(data: Union[bytes, str]) -> str:
    """Hash bytes or text (UTF-8) synchronously"""
    if isinstance(data, str):
        data = data.encode("utf-8")
    digest = hashlib.sha256()
    view = memoryview(data)
    for start in range(0, len(view), CHUNK_SIZE):
        digest.update(view[start:start + CHUNK_SIZE])
    return digest.hexdigest()


def stringify_ordered(value: Any) -> str:
    """Deterministic JSON: sorted keys, no whitespace"""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


class HashService:
    """
    Computes content hashes with a bounded timeout.

    All public methods are coroutines returning lowercase hex SHA-256 digests.
    """

    def __init__(self, timeout_ms: int = 5000):
        self.timeout_ms = timeout_ms

    async def _run(self, content_type: str, func, *args) -> str:
        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(func, *args),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.error(f"[HashService] {content_type} hash timed out after {self.timeout_ms}ms")
            raise HashTimeoutError(self.timeout_ms, content_type=content_type)
        except (TypeError, ValueError) as e:
            raise HashGenerationError(f"Cannot hash {content_type}: {e}", content_type=content_type) from e

        logger.debug(f"[HashService] {content_type} hashed in {int((time.time() - start_time) * 1000)}ms")
        return result

    async def hash_bytes(self, data: bytes) -> str:
        return await self._run("bytes", sha256_hex, data)

    async def hash_text(self, text: str) -> str:
        return await self._run("text", sha256_hex, text)

    async def hash_json(self, value: Any) -> str:
        """Hash JSON-compatible data with sorted keys so key order never matters"""
        return await self._run("json", lambda v: sha256_hex(stringify_ordered(v)), value)

    async def hash_signature(self, parts: Iterable[str]) -> str:
        """
        Hash an order-independent signature.

        The parts are sorted lexicographically and joined with newlines
        before hashing, so traversal order does not affect the digest.
        """
        return await self._run("signature", lambda p: sha256_hex("\n".join(sorted(p))), list(parts))

    async def hash_combined(self, *hashes: str) -> str:
        """Chain previously computed digests into one"""
        for value in hashes:
            if not value:
                raise HashGenerationError("Cannot combine an empty hash", content_type="combined")
        return await self._run("combined", sha256_hex, "".join(hashes))
