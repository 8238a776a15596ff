"""Record Store — Package."""

from record_store.ledger import (
    RECORD_KEYS,
    InMemoryLedger,
    Ledger,
    PlainLedger,
    VersionedLedger,
    record_key,
)
from record_store.store import RecordStore

__all__ = [
    "RECORD_KEYS",
    "InMemoryLedger",
    "Ledger",
    "PlainLedger",
    "VersionedLedger",
    "record_key",
    "RecordStore",
]
