"""
Record Store — Ledger Collaborators
=====================================

The external key/value ledger the record store talks to.

Interface (all calls are suspension points):
    get(key)            → bytes (empty when the key is absent)
    set(key, value)     → None
    is_available()      → bool

Ledgers that can version their keys additionally implement:
    get_versioned(key)                      → (bytes, version)
    compare_and_set(key, value, expected)   → bool

Ledgers that can enumerate their keys expose ``list_keys()``; audits use it
to find record blobs missing from the key index.

Version 0 means "never written". ``compare_and_set`` writes only when the
key's current version equals ``expected`` and bumps the version on success.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

logger = logging.getLogger("record_store.ledger")

RECORD_KEYS = "record_keys"
RECORD_PREFIX = "record_"


def record_key(record_id: str) -> str:
    return f"{RECORD_PREFIX}{record_id}"


@runtime_checkable
class Ledger(Protocol):
    async def get(self, key: str) -> bytes: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def is_available(self) -> bool: ...


@runtime_checkable
class VersionedLedger(Ledger, Protocol):
    async def get_versioned(self, key: str) -> tuple[bytes, int]: ...

    async def compare_and_set(self, key: str, value: bytes, expected_version: int) -> bool: ...


# ─────────────────────────────────────────────────────────────────────────────
# In-memory ledger
# ─────────────────────────────────────────────────────────────────────────────
class InMemoryLedger:
    """Process-local versioned ledger.

    Every call yields to the event loop once, so concurrent tasks interleave
    at the same points they would against a remote ledger.
    """

    def __init__(self, available: bool = True) -> None:
        self._data: dict[str, bytes] = {}
        self._versions: dict[str, int] = {}
        self.available = available

    async def get(self, key: str) -> bytes:
        await asyncio.sleep(0)
        return self._data.get(key, b"")

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.sleep(0)
        self._data[key] = bytes(value)
        self._versions[key] = self._versions.get(key, 0) + 1

    async def is_available(self) -> bool:
        return self.available

    async def get_versioned(self, key: str) -> tuple[bytes, int]:
        await asyncio.sleep(0)
        return self._data.get(key, b""), self._versions.get(key, 0)

    async def compare_and_set(self, key: str, value: bytes, expected_version: int) -> bool:
        await asyncio.sleep(0)
        current = self._versions.get(key, 0)
        if current != expected_version:
            logger.debug("CAS on %s rejected: expected v%d, at v%d", key, expected_version, current)
            return False
        self._data[key] = bytes(value)
        self._versions[key] = current + 1
        return True

    def keys(self) -> list[str]:
        return list(self._data)

    async def list_keys(self) -> list[str]:
        await asyncio.sleep(0)
        return sorted(self._data)


class PlainLedger:
    """View of another ledger exposing only get / set / is_available.

    Useful for talking to stores that have no versioning, and for observing
    the record store's plain read-modify-write index path.
    """

    def __init__(self, inner: Ledger) -> None:
        self._inner = inner

    async def get(self, key: str) -> bytes:
        return await self._inner.get(key)

    async def set(self, key: str, value: bytes) -> None:
        await self._inner.set(key, value)

    async def is_available(self) -> bool:
        return await self._inner.is_available()


def supports_versioning(ledger: Optional[Ledger]) -> bool:
    return isinstance(ledger, VersionedLedger)
