"""
Record Store — Ledger-backed CRUD
===================================

The only component that touches the external ledger.

Layout on the ledger:
    record_keys      → JSON array of record ids (the key index)
    record_<id>      → JSON record blob (see fhe_engine.models.RecordBlob)

Index invariant: every id in the index has a record blob, and every record
blob's id appears in the index exactly once. The ledger offers no
transactions, so ``create_record`` writes the blob first and appends to the
index second:

    • On a versioned ledger the append is a compare-and-set loop on the
      index version, retried on conflict, so concurrent creators converge
      to an index holding every id.
    • On a plain ledger it is a read-modify-write; two concurrent creators
      can lose one id from the index while both blobs exist.

A malformed index reads as empty (logged), and the next append overwrites
it. Unparseable record blobs are skipped during listing.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError as SchemaError

from fhe_engine.errors import (
    FormatError,
    NotFoundError,
    StoreUnavailableError,
    TutorError,
    ValidationError,
    VersionConflictError,
)
from fhe_engine.models import LearningRecord, RecordBlob
from record_store.ledger import RECORD_KEYS, Ledger, record_key, supports_versioning

logger = logging.getLogger("record_store.store")

T = TypeVar("T")

DEFAULT_INDEX_RETRIES = 5
ID_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
ID_SUFFIX_LENGTH = 7

Mutator = Callable[[LearningRecord], LearningRecord]


# ─────────────────────────────────────────────────────────────────────────────
# Serialization helpers
# ─────────────────────────────────────────────────────────────────────────────
def _dump(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def parse_index(raw: bytes) -> list[str]:
    """Decode the key index blob; malformed content reads as empty."""
    if not raw or not raw.strip():
        return []
    try:
        ids = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Malformed key index — treating as empty: %s", exc)
        return []
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        logger.error("Key index is not a list of ids — treating as empty")
        return []

    seen: set[str] = set()
    unique: list[str] = []
    for record_id in ids:
        if record_id not in seen:
            seen.add(record_id)
            unique.append(record_id)
    if len(unique) != len(ids):
        logger.warning("Key index held %d duplicate id(s)", len(ids) - len(unique))
    return unique


def parse_record(record_id: str, raw: bytes) -> LearningRecord:
    try:
        blob = RecordBlob.model_validate(json.loads(raw.decode("utf-8")))
        return LearningRecord.from_blob(record_id, blob)
    except (UnicodeDecodeError, json.JSONDecodeError, SchemaError) as exc:
        raise FormatError(f"Unparseable record blob for {record_id}: {exc}") from exc


def new_record_id(clock: Callable[[], float] = time.time) -> str:
    """Millisecond timestamp plus a random base-36 suffix."""
    suffix = "".join(secrets.choice(ID_SUFFIX_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"{int(clock() * 1000)}-{suffix}"


# ─────────────────────────────────────────────────────────────────────────────
# Store
# ─────────────────────────────────────────────────────────────────────────────
class RecordStore:
    """CRUD over record blobs plus the key index protocol."""

    def __init__(
        self,
        ledger: Ledger,
        *,
        max_index_retries: int = DEFAULT_INDEX_RETRIES,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.ledger = ledger
        self.max_index_retries = max(1, max_index_retries)
        self.id_factory = id_factory or new_record_id

    # ── Ledger access ────────────────────────────────────────────────
    async def _io(self, call: Awaitable[T], what: str) -> T:
        try:
            return await call
        except TutorError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Ledger {what} failed: {exc}") from exc

    async def _require_available(self) -> None:
        if not await self._io(self.ledger.is_available(), "availability check"):
            raise StoreUnavailableError("Ledger is not available")

    # ── Reads ────────────────────────────────────────────────────────
    async def read_index(self) -> list[str]:
        raw = await self._io(self.ledger.get(RECORD_KEYS), f"get({RECORD_KEYS})")
        return parse_index(raw)

    async def get_record(self, record_id: str) -> LearningRecord:
        raw = await self._io(self.ledger.get(record_key(record_id)), f"get(record {record_id})")
        if not raw:
            raise NotFoundError(record_id)
        return parse_record(record_id, raw)

    async def list_records(self) -> list[LearningRecord]:
        """Every indexed record that parses, newest first."""
        if not await self._io(self.ledger.is_available(), "availability check"):
            logger.warning("Ledger unavailable — returning no records")
            return []

        records: list[LearningRecord] = []
        for record_id in await self.read_index():
            raw = await self._io(self.ledger.get(record_key(record_id)), f"get(record {record_id})")
            if not raw:
                logger.warning("Indexed record %s has no blob — skipping", record_id)
                continue
            try:
                records.append(parse_record(record_id, raw))
            except FormatError as exc:
                logger.warning("Skipping record %s: %s", record_id, exc)

        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records

    # ── Writes ───────────────────────────────────────────────────────
    async def create_record(self, candidate: RecordBlob) -> str:
        """Write a new record blob, then append its id to the key index."""
        await self._require_available()
        record_id = self.id_factory()

        await self._io(
            self.ledger.set(record_key(record_id), _dump(candidate.to_json_dict())),
            f"set(record {record_id})",
        )
        await self._append_to_index(record_id)

        logger.info("Created record %s (%s, owner %s)", record_id, candidate.subject, candidate.owner)
        return record_id

    async def _append_to_index(self, record_id: str) -> None:
        if not supports_versioning(self.ledger):
            ids = await self.read_index()
            ids.append(record_id)
            await self._io(self.ledger.set(RECORD_KEYS, _dump(ids)), f"set({RECORD_KEYS})")
            return

        conflict: Optional[VersionConflictError] = None
        for attempt in range(1, self.max_index_retries + 1):
            raw, version = await self._io(
                self.ledger.get_versioned(RECORD_KEYS), f"get_versioned({RECORD_KEYS})"
            )
            ids = parse_index(raw)
            if record_id in ids:
                return
            ids.append(record_id)

            written = await self._io(
                self.ledger.compare_and_set(RECORD_KEYS, _dump(ids), version),
                f"compare_and_set({RECORD_KEYS})",
            )
            if written:
                return

            conflict = VersionConflictError(RECORD_KEYS, version, None)
            logger.warning(
                "Key index moved while appending %s (attempt %d/%d) — retrying",
                record_id, attempt, self.max_index_retries,
            )

        raise StoreUnavailableError(
            f"Could not append {record_id} to the key index after "
            f"{self.max_index_retries} attempts"
        ) from conflict

    async def update_record(self, record_id: str, mutator: Mutator) -> LearningRecord:
        """Read-mutate-write a single record blob. The key index is untouched.

        ``mutator`` may raise to abort; nothing is written in that case.
        """
        await self._require_available()
        current = await self.get_record(record_id)
        updated = mutator(current.model_copy())

        if (updated.id, updated.owner, updated.timestamp) != (
            current.id, current.owner, current.timestamp,
        ):
            raise ValidationError("id, owner and timestamp of a record are immutable")

        await self._io(
            self.ledger.set(record_key(record_id), _dump(updated.to_blob().to_json_dict())),
            f"set(record {record_id})",
        )
        logger.info("Updated record %s → %s", record_id, updated.status.value)
        return updated
