"""
Learning Ledger — Key/Value Smart Contract
============================================

The external ledger behind the FHE tutor: an opaque key/value store in
Algorand box storage. Record blobs and the record key index are written
here as UTF-8 JSON by the off-chain record store; the contract never
interprets them.

Values are split into chunks so a blob is not bounded by the app-argument
or log size limits. Clients read the boxes directly through algod; nothing
large travels through an ABI return.

Box layout (per key):
  ┌──────────────────────────────────────────────────────────────┐
  │ "d" ‖ key ‖ itob(i)  →  chunk i of the value                │
  │ "n" ‖ key            →  uint64 chunk count                  │
  │ "v" ‖ key            →  uint64 version (absent = 0)         │
  └──────────────────────────────────────────────────────────────┘

A write is one atomic group: ``write_chunk`` for every chunk followed by
``commit``. When ``commit`` rejects the expected version the whole group
fails, so no chunk of a losing writer ever lands.
"""

from algopy import ARC4Contract, Bytes, String, UInt64, op, subroutine
from algopy.arc4 import abimethod


# ---------------------------------------------------------------------------
# Box names
# ---------------------------------------------------------------------------
@subroutine
def _chunk_name(key: String, index: UInt64) -> Bytes:
    return Bytes(b"d") + key.bytes + op.itob(index)


@subroutine
def _count_name(key: String) -> Bytes:
    return Bytes(b"n") + key.bytes


@subroutine
def _version_name(key: String) -> Bytes:
    return Bytes(b"v") + key.bytes


@subroutine
def _read_uint(name: Bytes) -> UInt64:
    raw, exists = op.Box.get(name)
    if exists:
        return op.btoi(raw)
    return UInt64(0)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
class LearningLedger(ARC4Contract):
    """Chunked key/value ledger with per-key versions.

    ABI Methods
    -----------
    write_chunk(key, index, chunk)
        Store chunk ``index`` of the value being written to ``key``.
    commit(key, chunk_count, expected_version, checked) → uint64
        Finish a write: drop stale chunks, record the chunk count and bump
        the version. With ``checked`` set, fails unless the current version
        equals ``expected_version``. Returns the new version.
    get_version(key) → uint64
        Current version of ``key`` (0 when never written).
    is_available() → bool
        Liveness check for clients.
    """

    # ── Write ─────────────────────────────────────────────────────────
    @abimethod()
    def write_chunk(self, key: String, index: UInt64, chunk: Bytes) -> None:
        name = _chunk_name(key, index)
        # Chunk sizes change between writes.
        _deleted = op.Box.delete(name)
        op.Box.put(name, chunk)

    @abimethod()
    def commit(
        self, key: String, chunk_count: UInt64, expected_version: UInt64, checked: bool
    ) -> UInt64:
        version = _read_uint(_version_name(key))
        if checked:
            assert version == expected_version, "version mismatch"

        stale = chunk_count
        previous_count = _read_uint(_count_name(key))
        while stale < previous_count:
            _dropped = op.Box.delete(_chunk_name(key, stale))
            stale += 1

        op.Box.put(_count_name(key), op.itob(chunk_count))
        op.Box.put(_version_name(key), op.itob(version + 1))
        return version + 1

    # ── Read ──────────────────────────────────────────────────────────
    @abimethod(readonly=True)
    def get_version(self, key: String) -> UInt64:
        return _read_uint(_version_name(key))

    @abimethod(readonly=True)
    def is_available(self) -> bool:
        return True
