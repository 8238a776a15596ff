"""
Decryption — Signature-Gated Reveal
=====================================

A reveal attempt is a small state machine:

    Idle ─► ChallengeIssued ─┬─► Authorized
                             ├─► Rejected
                             └─► Cancelled

1. ``request_challenge`` formats the challenge message (no network).
2. ``await_signature`` suspends until the wallet signs or the user cancels.
3. ``authorize`` turns the signature into an AuthorizationToken.
4. ``reveal`` decodes a ciphertext, only with a token from this session.

Challenge layout (one field per line, fixed order):

    publickey:<hex public key material>
    contractAddresses:<contract identifier>
    contractsChainId:<chain id>
    startTimestamp:<unix seconds>
    durationDays:<days>

The revealed plaintext lives in a RevealedValue owned by the caller and is
never written anywhere.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
import uuid
from enum import Enum
from typing import Callable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from decryption.verifier import PermissiveVerifier, SignatureVerifier
from fhe_engine.codec import CiphertextCodec, SimulatedFHECodec
from fhe_engine.errors import SignatureRejectedError, UnauthorizedError

logger = logging.getLogger("decryption.protocol")

PUBLIC_KEY_HEX_DIGITS = 2000
DEFAULT_DURATION_DAYS = 30
DEFAULT_SETTLE_SECONDS = 1.5


# ─────────────────────────────────────────────────────────────────────────────
# Models
# ─────────────────────────────────────────────────────────────────────────────
class DecryptionState(str, Enum):
    IDLE = "idle"
    CHALLENGE_ISSUED = "challenge_issued"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


def generate_public_key() -> str:
    """Random public key material: 0x followed by 2000 hex digits."""
    return "0x" + secrets.token_hex(PUBLIC_KEY_HEX_DIGITS // 2)


class ChallengeContext(BaseModel):
    """Values bound into the challenge message."""
    model_config = ConfigDict(frozen=True)

    public_key: str
    contract_address: str
    chain_id: int
    start_timestamp: int
    duration_days: int = DEFAULT_DURATION_DAYS

    @classmethod
    def fresh(
        cls,
        contract_address: str,
        chain_id: int,
        duration_days: int = DEFAULT_DURATION_DAYS,
        clock: Callable[[], float] = time.time,
    ) -> "ChallengeContext":
        return cls(
            public_key=generate_public_key(),
            contract_address=contract_address,
            chain_id=chain_id,
            start_timestamp=int(clock()),
            duration_days=duration_days,
        )


def format_challenge(context: ChallengeContext) -> str:
    return "\n".join([
        f"publickey:{context.public_key}",
        f"contractAddresses:{context.contract_address}",
        f"contractsChainId:{context.chain_id}",
        f"startTimestamp:{context.start_timestamp}",
        f"durationDays:{context.duration_days}",
    ])


class AuthorizationToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    signature: str
    challenge: str
    issued_at: int = Field(default_factory=lambda: int(time.time()))


class Signer(Protocol):
    async def sign_message(self, message: str) -> str: ...


class RevealedValue:
    """Caller-held plaintext that can be wiped with ``clear()``."""

    def __init__(self, record_id: Optional[str], value: float) -> None:
        self.record_id = record_id
        self._value: Optional[float] = value

    @property
    def value(self) -> Optional[float]:
        return self._value

    @property
    def cleared(self) -> bool:
        return self._value is None

    def clear(self) -> None:
        self._value = None

    def __repr__(self) -> str:
        return f"RevealedValue(record_id={self.record_id!r}, cleared={self.cleared})"


# ─────────────────────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────────────────────
class DecryptionSession:
    """One reveal attempt. Create a new session for every attempt."""

    def __init__(
        self,
        context: ChallengeContext,
        codec: Optional[CiphertextCodec] = None,
        *,
        verifier: Optional[SignatureVerifier] = None,
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.context = context
        self.codec = codec or SimulatedFHECodec()
        self.verifier = verifier or PermissiveVerifier()
        self.settle_seconds = settle_seconds

        self.state = DecryptionState.IDLE
        self.challenge: Optional[str] = None
        self.signature: Optional[str] = None
        self.token: Optional[AuthorizationToken] = None
        self._pending: Optional[asyncio.Future] = None
        self._cancel_requested = False

    def _expect(self, *states: DecryptionState) -> None:
        if self.state not in states:
            raise SignatureRejectedError(
                f"Decryption session is {self.state.value}, expected "
                + " or ".join(s.value for s in states)
            )

    def request_challenge(self) -> str:
        self._expect(DecryptionState.IDLE)
        self.challenge = format_challenge(self.context)
        self.state = DecryptionState.CHALLENGE_ISSUED
        logger.info("Challenge issued for session %s", self.id)
        return self.challenge

    async def await_signature(self, signer: Signer) -> str:
        """Ask the signer to sign the challenge and wait for the answer."""
        self._expect(DecryptionState.CHALLENGE_ISSUED)
        self._pending = asyncio.ensure_future(signer.sign_message(self.challenge or ""))
        try:
            signature = await self._pending
        except asyncio.CancelledError:
            self.state = DecryptionState.CANCELLED
            if self._cancel_requested:
                raise SignatureRejectedError("Signature request cancelled") from None
            raise
        except Exception as exc:
            self.state = DecryptionState.REJECTED
            logger.info("Signer declined session %s: %s", self.id, exc)
            raise SignatureRejectedError(f"Signer declined: {exc}") from exc
        finally:
            self._pending = None

        if not signature:
            self.state = DecryptionState.REJECTED
            raise SignatureRejectedError("Signer returned an empty signature")
        self.signature = signature
        return signature

    def cancel(self) -> bool:
        """Abandon the attempt. Returns False if it had already finished."""
        if self.state not in (DecryptionState.IDLE, DecryptionState.CHALLENGE_ISSUED):
            return False
        self._cancel_requested = True
        self.state = DecryptionState.CANCELLED
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        logger.info("Session %s cancelled", self.id)
        return True

    def authorize(self, signature: str) -> AuthorizationToken:
        """Grant a reveal token for a signature over this session's challenge."""
        self._expect(DecryptionState.CHALLENGE_ISSUED)
        if not self.verifier.verify(self.challenge or "", signature):
            self.state = DecryptionState.REJECTED
            raise SignatureRejectedError("Signature does not authorize this challenge")

        self.signature = signature
        self.token = AuthorizationToken(
            session_id=self.id, signature=signature, challenge=self.challenge or ""
        )
        self.state = DecryptionState.AUTHORIZED
        return self.token

    async def reveal(
        self,
        ciphertext: str,
        token: Optional[AuthorizationToken],
        record_id: Optional[str] = None,
    ) -> RevealedValue:
        """Decode ``ciphertext`` for the holder of a valid token."""
        if token is None:
            raise UnauthorizedError("A signed authorization is required to decrypt")
        if self.state is not DecryptionState.AUTHORIZED or token != self.token:
            raise UnauthorizedError("Authorization token does not belong to this session")

        if self.settle_seconds > 0:
            await asyncio.sleep(self.settle_seconds)
        return RevealedValue(record_id, self.codec.decode(ciphertext))

    async def run(
        self, ciphertext: str, signer: Signer, record_id: Optional[str] = None
    ) -> RevealedValue:
        """Full flow: challenge, signature, authorization, reveal."""
        self.request_challenge()
        signature = await self.await_signature(signer)
        token = self.authorize(signature)
        return await self.reveal(ciphertext, token, record_id)
