"""
Backend Router — Decryption
==============================

POST   /decrypt/challenge               — Open a decrypt attempt for a record
POST   /decrypt/{session_id}/signature  — Submit the wallet signature, reveal
                                          (with a study recommendation)
DELETE /decrypt/{session_id}            — Cancel an open attempt

The signature is produced client-side by the caller's wallet over the
challenge text returned by the first call. Revealed values are returned to
the caller only; nothing is written to the ledger.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from backend import config
from decryption.protocol import ChallengeContext, DecryptionSession
from decryption.verifier import AlgorandSignatureVerifier, PermissiveVerifier
from fhe_engine.errors import TutorError
from fhe_engine.models import StudyRecommendation
from lifecycle.analytics import recommend_study

logger = logging.getLogger("backend.decryption")
router = APIRouter(prefix="/decrypt", tags=["Decryption"])


class ChallengeRequest(BaseModel):
    record_id: str
    caller: str


class ChallengeResponse(BaseModel):
    session_id: str
    record_id: str
    challenge: str


class SignatureRequest(BaseModel):
    signature: str


class RevealResponse(BaseModel):
    record_id: str
    value: float
    recommendation: StudyRecommendation


@router.post("/challenge", response_model=ChallengeResponse)
async def request_challenge(req: ChallengeRequest):
    engine = config.get_engine()
    try:
        await engine.store.get_record(req.record_id)
    except TutorError as exc:
        raise config.http_error(exc)

    verifier = (
        AlgorandSignatureVerifier(req.caller) if config.VERIFY_SIGNATURES else PermissiveVerifier()
    )
    session = DecryptionSession(
        ChallengeContext.fresh(
            config.contract_address(),
            config.CHAIN_ID,
            config.CHALLENGE_DURATION_DAYS,
        ),
        engine.codec,
        verifier=verifier,
        settle_seconds=config.DECRYPT_SETTLE_SECONDS,
    )
    challenge = session.request_challenge()
    config.open_decrypt_session(session, req.record_id, req.caller)
    return ChallengeResponse(session_id=session.id, record_id=req.record_id, challenge=challenge)


@router.post("/{session_id}/signature", response_model=RevealResponse)
async def submit_signature(session_id: str, req: SignatureRequest):
    config.prune_decrypt_sessions()
    entry = config.decrypt_sessions.pop(session_id, None)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No open decrypt session {session_id}")
    session, record_id, _caller = entry

    try:
        token = session.authorize(req.signature)
        record = await config.get_engine().store.get_record(record_id)
        revealed = await session.reveal(record.encrypted_score, token, record_id)
    except TutorError as exc:
        logger.warning("Decrypt of %s failed: %s", record_id, exc)
        raise config.http_error(exc)
    return RevealResponse(
        record_id=record_id,
        value=revealed.value,
        recommendation=recommend_study(record, revealed.value),
    )


@router.delete("/{session_id}")
async def cancel_session(session_id: str):
    config.prune_decrypt_sessions()
    entry = config.decrypt_sessions.pop(session_id, None)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No open decrypt session {session_id}")
    session, record_id, _caller = entry
    session.cancel()
    return {"session_id": session_id, "record_id": record_id, "state": session.state.value}
