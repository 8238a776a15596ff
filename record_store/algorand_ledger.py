"""
Record Store — Algorand Ledger
================================

Ledger backed by the LearningLedger smart contract (box storage) on
Algorand, accessed through the typed client that ``algokit compile``
generates into ``smart_contracts/artifacts``.

Reads go straight to the boxes through algod, so a value is not limited by
the size of an ABI return. Writes split the value into chunks:

    group = write_chunk(key, 0, c0) … write_chunk(key, n-1, cn-1)
            + commit(key, n, expected_version, checked)

The group is atomic; a compare-and-set that loses leaves the key untouched.

Box names (see smart_contracts/learning_ledger/contract.py):
    "d" ‖ key ‖ uint64 index   → chunk
    "n" ‖ key                  → chunk count
    "v" ‖ key                  → version

Before every write the app account is topped up by the box minimum balance
the new value adds over the boxes it overwrites, when its spare balance
falls short.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional, TypeVar

import algokit_utils
from algokit_utils.models.transaction import SendParams
from algosdk.error import AlgodHTTPError

from fhe_engine.errors import StoreUnavailableError

logger = logging.getLogger("record_store.algorand")

T = TypeVar("T")

MAX_RETRIES = 3
RETRY_DELAY = 4  # seconds

# App args are capped at 2048 bytes per call; leave room for selector and key.
CHUNK_SIZE = 1792
# 16 transactions per group, one of them the commit.
MAX_CHUNKS = 15
MAX_VALUE_BYTES = CHUNK_SIZE * MAX_CHUNKS

BOX_FLAT_MBR = 2_500
BOX_BYTE_MBR = 400
UINT64_BYTES = 8


def _is_retriable(exc: Exception) -> bool:
    """Return True if the error is a transient 'txn dead' round mismatch."""
    msg = str(exc).lower()
    return "txn dead" in msg or "round outside of" in msg


def _as_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    return bytes(value)


# ─────────────────────────────────────────────────────────────────────────────
# Box layout
# ─────────────────────────────────────────────────────────────────────────────
def chunk_box(key: str, index: int) -> bytes:
    return b"d" + key.encode("utf-8") + index.to_bytes(UINT64_BYTES, "big")


def count_box(key: str) -> bytes:
    return b"n" + key.encode("utf-8")


def version_box(key: str) -> bytes:
    return b"v" + key.encode("utf-8")


def split_chunks(value: bytes) -> list[bytes]:
    return [value[i:i + CHUNK_SIZE] for i in range(0, len(value), CHUNK_SIZE)]


def box_mbr(key: str, chunks: list[bytes]) -> int:
    """Minimum balance (µALGO) the boxes of one value occupy."""
    def cost(name: bytes, size: int) -> int:
        return BOX_FLAT_MBR + BOX_BYTE_MBR * (len(name) + size)

    total = cost(count_box(key), UINT64_BYTES) + cost(version_box(key), UINT64_BYTES)
    for index, chunk in enumerate(chunks):
        total += cost(chunk_box(key, index), len(chunk))
    return total


# ─────────────────────────────────────────────────────────────────────────────
# Ledger
# ─────────────────────────────────────────────────────────────────────────────
class AlgorandLedger:
    """Versioned ledger over the on-chain LearningLedger contract."""

    def __init__(self, algorand: algokit_utils.AlgorandClient, client: Any, sender: str) -> None:
        self.algorand = algorand
        self.client = client
        self.sender = sender

    @classmethod
    def from_environment(cls, app_id: int) -> "AlgorandLedger":
        """Connect with ALGOD_* settings and the DEPLOYER account from the env."""
        from smart_contracts.artifacts.learning_ledger.learning_ledger_client import (
            LearningLedgerClient,
        )

        algorand = algokit_utils.AlgorandClient.from_environment()
        algorand.set_default_validity_window(1000)
        deployer = algorand.account.from_environment("DEPLOYER")

        client = LearningLedgerClient(
            algorand=algorand,
            app_id=app_id,
            default_sender=deployer.address,
        )
        logger.info("Algorand ledger initialized — app %d, sender %s", app_id, deployer.address)
        return cls(algorand, client, deployer.address)

    # ── Plumbing ─────────────────────────────────────────────────────
    @staticmethod
    def _send_params() -> SendParams:
        return SendParams(max_rounds_to_wait=1000, populate_app_call_resources=True)

    def _with_retries(self, what: str, call: Callable[[], T]) -> T:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                return call()
            except Exception as exc:
                if _is_retriable(exc) and attempt < MAX_RETRIES:
                    logger.warning("%s attempt %d hit transient error — retrying in %ds…", what, attempt, RETRY_DELAY)
                    time.sleep(RETRY_DELAY)
                else:
                    logger.error("%s failed: %s", what, exc)
                    raise
        raise RuntimeError(f"{what} exhausted retries")  # pragma: no cover

    def _read_box(self, name: bytes) -> Optional[bytes]:
        def read() -> Optional[bytes]:
            try:
                return _as_bytes(self.algorand.app.get_box_value(self.client.app_id, name))
            except AlgodHTTPError as exc:
                if exc.code == 404:
                    return None
                raise

        return self._with_retries(f"box read {name[:24]!r}", read)

    def _replaced_mbr(self, key: str, new_count: int) -> int:
        """MBR already held by the boxes a write of ``new_count`` chunks overwrites."""
        raw_count = self._read_box(count_box(key))
        if raw_count is None:
            return 0
        old_count = int.from_bytes(raw_count, "big")
        kept = min(old_count, new_count)
        # Only the last chunk of a value can be shorter than CHUNK_SIZE.
        sizes = [CHUNK_SIZE] * kept
        if kept and kept == old_count:
            sizes[-1] = len(self._read_box(chunk_box(key, old_count - 1)) or b"")
        return box_mbr(key, [bytes(size) for size in sizes])

    def _fund_boxes(self, key: str, chunks: list[bytes]) -> None:
        needed = box_mbr(key, chunks) - self._replaced_mbr(key, len(chunks))
        if needed <= 0:
            return
        info = self.algorand.account.get_information(self.client.app_address)
        spare = info.amount.micro_algo - info.min_balance.micro_algo
        shortfall = needed - spare
        if shortfall <= 0:
            return

        logger.info("Topping up app account with %d µALGO for %s", shortfall, key)
        self._with_retries(
            "MBR funding",
            lambda: self.algorand.send.payment(
                algokit_utils.PaymentParams(
                    amount=algokit_utils.AlgoAmount(micro_algo=shortfall),
                    sender=self.sender,
                    receiver=self.client.app_address,
                    validity_window=1000,
                ),
                send_params=self._send_params(),
            ),
        )

    # ── Sync operations ──────────────────────────────────────────────
    def _version_sync(self, key: str) -> int:
        raw = self._read_box(version_box(key))
        return int.from_bytes(raw, "big") if raw else 0

    def _get_sync(self, key: str) -> bytes:
        raw_count = self._read_box(count_box(key))
        if not raw_count:
            return b""

        parts: list[bytes] = []
        for index in range(int.from_bytes(raw_count, "big")):
            chunk = self._read_box(chunk_box(key, index))
            if chunk is None:
                raise StoreUnavailableError(f"Chunk {index} of '{key}' is missing on the ledger")
            parts.append(chunk)
        return b"".join(parts)

    def _get_versioned_sync(self, key: str) -> tuple[bytes, int]:
        # A commit landing between the reads shows up as a version change.
        for _ in range(MAX_RETRIES):
            before = self._version_sync(key)
            data = self._get_sync(key)
            if self._version_sync(key) == before:
                return data, before
        raise StoreUnavailableError(f"'{key}' kept changing while being read")

    def _write_sync(self, key: str, value: bytes, expected_version: Optional[int]) -> bool:
        chunks = split_chunks(value)
        if len(chunks) > MAX_CHUNKS:
            raise StoreUnavailableError(
                f"'{key}' is {len(value)} bytes; the ledger holds at most {MAX_VALUE_BYTES} per key"
            )
        self._fund_boxes(key, chunks)

        def send() -> Any:
            group = self.client.new_group()
            for index, chunk in enumerate(chunks):
                group.write_chunk(args=(key, index, chunk))
            group.commit(args=(key, len(chunks), expected_version or 0, expected_version is not None))
            return group.send(send_params=self._send_params())

        try:
            result = self._with_retries(f"write({key})", send)
        except Exception:
            if expected_version is not None and self._version_sync(key) != expected_version:
                logger.info("Write to %s lost against a concurrent writer", key)
                return False
            raise

        logger.debug(
            "write(%s) confirmed in %s (%d chunk(s))",
            key, result.tx_ids[0] if getattr(result, "tx_ids", None) else "N/A", len(chunks),
        )
        return True

    def _available_sync(self) -> bool:
        try:
            result = self.client.send.is_available(send_params=self._send_params())
        except Exception as exc:
            logger.warning("Ledger availability check failed: %s", exc)
            return False
        return bool(result.abi_return)

    def _keys_sync(self) -> list[str]:
        boxes = self._with_retries(
            "box listing", lambda: self.algorand.app.get_box_names(self.client.app_id)
        )
        return sorted(
            box.name_raw[1:].decode("utf-8", "replace")
            for box in boxes
            if box.name_raw.startswith(b"n")
        )

    # ── Ledger interface ─────────────────────────────────────────────
    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get_sync, key)

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._write_sync, key, bytes(value), None)

    async def is_available(self) -> bool:
        return await asyncio.to_thread(self._available_sync)

    async def get_versioned(self, key: str) -> tuple[bytes, int]:
        return await asyncio.to_thread(self._get_versioned_sync, key)

    async def compare_and_set(self, key: str, value: bytes, expected_version: int) -> bool:
        return await asyncio.to_thread(self._write_sync, key, bytes(value), expected_version)

    async def list_keys(self) -> list[str]:
        return await asyncio.to_thread(self._keys_sync)


def connect(app_id: Optional[int]) -> AlgorandLedger:
    if not app_id:
        raise StoreUnavailableError("LEDGER_APP_ID must be set to use the Algorand ledger")
    return AlgorandLedger.from_environment(app_id)
