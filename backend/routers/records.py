"""
Backend Router — Records
===========================

GET  /subjects               — Subjects a record may be filed under
GET  /records                — All records, newest first
GET  /records/{id}           — A single record
POST /records                — Submit a new encrypted record
POST /records/{id}/analyze   — Run the encrypted analysis (owner only)
POST /records/{id}/archive   — Archive a record (owner only)
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from backend.config import get_engine, http_error
from fhe_engine.errors import TutorError
from fhe_engine.models import SUBJECTS, LearningRecord

logger = logging.getLogger("backend.records")
router = APIRouter(tags=["Records"])


class SubmitRequest(BaseModel):
    owner: str = Field(..., description="Wallet address of the submitter")
    subject: str = Field(..., description="One of the supported subjects")
    test_score: Optional[float] = Field(default=None, description="Plaintext score; encrypted before storage")
    study_hours: float = Field(default=0, ge=0)
    description: str = ""


class SubmitResponse(BaseModel):
    success: bool
    record_id: str
    message: str


class TransitionRequest(BaseModel):
    caller: str


class TransitionResponse(BaseModel):
    success: bool
    record: LearningRecord
    message: str


class RecordsResponse(BaseModel):
    record_count: int
    records: list[LearningRecord]


@router.get("/subjects")
async def list_subjects():
    return {"subjects": list(SUBJECTS)}


@router.get("/records", response_model=RecordsResponse)
async def list_records():
    """List every readable record, newest first."""
    try:
        records = await get_engine().store.list_records()
    except TutorError as exc:
        logger.error("Listing failed: %s", exc)
        raise http_error(exc)
    return RecordsResponse(record_count=len(records), records=records)


@router.get("/records/{record_id}", response_model=LearningRecord)
async def get_record(record_id: str):
    try:
        return await get_engine().store.get_record(record_id)
    except TutorError as exc:
        raise http_error(exc)


@router.post("/records", response_model=SubmitResponse)
async def submit_record(req: SubmitRequest):
    """Encrypt the score and store a new pending record."""
    try:
        record_id = await get_engine().submit(
            req.owner, req.subject, req.test_score, req.study_hours, req.description
        )
    except TutorError as exc:
        logger.warning("Submission failed: %s", exc)
        raise http_error(exc)
    return SubmitResponse(
        success=True, record_id=record_id, message="Learning data submitted securely!"
    )


@router.post("/records/{record_id}/analyze", response_model=TransitionResponse)
async def analyze_record(record_id: str, req: TransitionRequest):
    try:
        record = await get_engine().analyze(record_id, req.caller)
    except TutorError as exc:
        logger.warning("Analysis of %s failed: %s", record_id, exc)
        raise http_error(exc)
    return TransitionResponse(
        success=True, record=record, message="FHE analysis completed successfully!"
    )


@router.post("/records/{record_id}/archive", response_model=TransitionResponse)
async def archive_record(record_id: str, req: TransitionRequest):
    try:
        record = await get_engine().archive(record_id, req.caller)
    except TutorError as exc:
        logger.warning("Archive of %s failed: %s", record_id, exc)
        raise http_error(exc)
    return TransitionResponse(
        success=True, record=record, message="Record archived successfully!"
    )
