"""
Backend — Shared Configuration
================================

Ledger selection, lazily built singletons, and the mapping from core
errors to HTTP responses.

Environment (.env at the project root):
    LEDGER_BACKEND           memory | algorand   (default: memory)
    LEDGER_APP_ID            LearningLedger app id (algorand backend)
    LEDGER_CONTRACT_ADDRESS  contract identifier bound into decrypt challenges
    CHAIN_ID                 chain id bound into decrypt challenges (416002)
    DECRYPT_SETTLE_SECONDS   simulated decryption latency (1.5)
    CHALLENGE_DURATION_DAYS  challenge validity window (30)
    INDEX_MAX_RETRIES        key index compare-and-set attempts (5)
    VERIFY_SIGNATURES        1 to check wallet signatures before reveal (0)
    DECRYPT_SESSION_TTL_SECONDS  open decrypt attempts expire after this (300)
    MAX_OPEN_DECRYPT_SESSIONS    oldest attempts are evicted past this (256)
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import HTTPException

from decryption.protocol import DecryptionSession
from fhe_engine.codec import SimulatedFHECodec
from fhe_engine.errors import (
    FormatError,
    InvalidTransitionError,
    NotFoundError,
    SignatureRejectedError,
    StoreUnavailableError,
    TutorError,
    UnauthorizedError,
    ValidationError,
)
from lifecycle.analytics import DashboardEngine
from lifecycle.engine import LifecycleEngine
from record_store.ledger import InMemoryLedger, Ledger
from record_store.store import RecordStore

logger = logging.getLogger("backend.config")

# ─────────────────────────────────────────────────────────────────────────────
# Load .env
# ─────────────────────────────────────────────────────────────────────────────
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────
LEDGER_BACKEND = os.environ.get("LEDGER_BACKEND", "memory").lower()
LEDGER_APP_ID = int(os.environ.get("LEDGER_APP_ID", "0") or 0)
LEDGER_CONTRACT_ADDRESS = os.environ.get("LEDGER_CONTRACT_ADDRESS", "")
CHAIN_ID = int(os.environ.get("CHAIN_ID", "416002"))
DECRYPT_SETTLE_SECONDS = float(os.environ.get("DECRYPT_SETTLE_SECONDS", "1.5"))
CHALLENGE_DURATION_DAYS = int(os.environ.get("CHALLENGE_DURATION_DAYS", "30"))
INDEX_MAX_RETRIES = int(os.environ.get("INDEX_MAX_RETRIES", "5"))
VERIFY_SIGNATURES = os.environ.get("VERIFY_SIGNATURES", "0") == "1"
DECRYPT_SESSION_TTL_SECONDS = float(os.environ.get("DECRYPT_SESSION_TTL_SECONDS", "300"))
MAX_OPEN_DECRYPT_SESSIONS = int(os.environ.get("MAX_OPEN_DECRYPT_SESSIONS", "256"))

# ─────────────────────────────────────────────────────────────────────────────
# Singletons
# ─────────────────────────────────────────────────────────────────────────────
_ledger: Optional[Ledger] = None
_store: Optional[RecordStore] = None
_engine: Optional[LifecycleEngine] = None
_dashboard: Optional[DashboardEngine] = None
_codec = SimulatedFHECodec()

# Open decrypt attempts: session id → (session, record id, caller)
decrypt_sessions: dict[str, tuple[DecryptionSession, str, str]] = {}


def prune_decrypt_sessions(now: Optional[float] = None) -> int:
    """Cancel and drop attempts older than DECRYPT_SESSION_TTL_SECONDS."""
    now = time.time() if now is None else now
    expired = [
        session_id
        for session_id, (session, _record_id, _caller) in decrypt_sessions.items()
        if now - session.context.start_timestamp > DECRYPT_SESSION_TTL_SECONDS
    ]
    for session_id in expired:
        session, _record_id, _caller = decrypt_sessions.pop(session_id)
        session.cancel()
    if expired:
        logger.info("Expired %d decrypt session(s)", len(expired))
    return len(expired)


def open_decrypt_session(session: DecryptionSession, record_id: str, caller: str) -> None:
    """Track a new attempt, evicting the oldest ones past MAX_OPEN_DECRYPT_SESSIONS."""
    prune_decrypt_sessions()
    while decrypt_sessions and len(decrypt_sessions) >= MAX_OPEN_DECRYPT_SESSIONS:
        oldest_id = next(iter(decrypt_sessions))
        oldest, _record_id, _caller = decrypt_sessions.pop(oldest_id)
        oldest.cancel()
        logger.warning("Evicted decrypt session %s — too many open attempts", oldest_id)
    decrypt_sessions[session.id] = (session, record_id, caller)


def _build_ledger() -> Ledger:
    if LEDGER_BACKEND == "algorand":
        from record_store.algorand_ledger import connect

        return connect(LEDGER_APP_ID)
    if LEDGER_BACKEND != "memory":
        raise StoreUnavailableError(f"Unknown LEDGER_BACKEND '{LEDGER_BACKEND}'")
    logger.warning("Using the in-memory ledger — records vanish on restart")
    return InMemoryLedger()


def get_engine() -> LifecycleEngine:
    """Lazy-init ledger, record store and lifecycle engine."""
    global _ledger, _store, _engine

    if _engine is None:
        if _ledger is None:
            _ledger = _build_ledger()
        _store = RecordStore(_ledger, max_index_retries=INDEX_MAX_RETRIES)
        _engine = LifecycleEngine(_store, _codec)
        logger.info("Lifecycle engine initialized — %s ledger", LEDGER_BACKEND)

    return _engine


def get_dashboard() -> DashboardEngine:
    global _dashboard

    if _dashboard is None:
        _dashboard = DashboardEngine(_codec)
    return _dashboard


def contract_address() -> str:
    if LEDGER_CONTRACT_ADDRESS:
        return LEDGER_CONTRACT_ADDRESS
    client = getattr(_ledger, "client", None)
    if client is not None:
        return str(client.app_address)
    return f"app-{LEDGER_APP_ID}" if LEDGER_APP_ID else "local-ledger"


def use_ledger(ledger: Optional[Ledger]) -> None:
    """Swap the ledger (and drop dependent singletons). Used by tests."""
    global _ledger, _store, _engine

    _ledger = ledger
    _store = None
    _engine = None
    decrypt_sessions.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Error mapping
# ─────────────────────────────────────────────────────────────────────────────
_STATUS_CODES: dict[type[TutorError], int] = {
    ValidationError: 422,
    FormatError: 422,
    NotFoundError: 404,
    UnauthorizedError: 403,
    InvalidTransitionError: 409,
    SignatureRejectedError: 401,
    StoreUnavailableError: 503,
}


def http_error(exc: TutorError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
