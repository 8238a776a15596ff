"""
FHE Engine — Data Models
==========================

Shared Pydantic models for learning records, their on-ledger blob schema,
and the three-phase operation status shown to users.

On-ledger blob (JSON, UTF-8) under ``record_<id>``:
    score        → ciphertext produced by the value codec
    timestamp    → unix seconds, set at creation
    owner        → wallet address of the submitter
    subject      → one of SUBJECTS
    status       → pending | analyzed | archived
    studyHours   → non-negative number
    description  → free text
    schemaVersion → blob schema version (absent on legacy blobs)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BLOB_SCHEMA_VERSION = 1


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────
class RecordStatus(str, Enum):
    PENDING = "pending"
    ANALYZED = "analyzed"
    ARCHIVED = "archived"


class OperationPhase(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


SUBJECTS: tuple[str, ...] = (
    "Mathematics",
    "Physics",
    "Chemistry",
    "Biology",
    "History",
    "Literature",
    "Computer Science",
    "Economics",
    "Languages",
)

# pending → analyzed, pending → archived, analyzed → archived
ALLOWED_TRANSITIONS: dict[RecordStatus, frozenset[RecordStatus]] = {
    RecordStatus.PENDING: frozenset({RecordStatus.ANALYZED, RecordStatus.ARCHIVED}),
    RecordStatus.ANALYZED: frozenset({RecordStatus.ARCHIVED}),
    RecordStatus.ARCHIVED: frozenset(),
}


def can_transition(current: RecordStatus, target: RecordStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


# ─────────────────────────────────────────────────────────────────────────────
# Ledger Blob Schema
# ─────────────────────────────────────────────────────────────────────────────
class RecordBlob(BaseModel):
    """Versioned schema of a record blob as stored on the ledger.

    Parsing is lenient to match blobs written by older clients: a missing or
    empty ``status`` reads as pending, a missing ``studyHours`` reads as 0 and
    blobs without ``schemaVersion`` are treated as version 1.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    score: str
    timestamp: int
    owner: str
    subject: str
    status: RecordStatus = RecordStatus.PENDING
    study_hours: float = Field(default=0, alias="studyHours")
    description: str = ""
    schema_version: int = Field(default=BLOB_SCHEMA_VERSION, alias="schemaVersion")

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        return value or RecordStatus.PENDING

    @field_validator("study_hours", mode="before")
    @classmethod
    def _default_hours(cls, value: Any) -> Any:
        return value or 0

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        return value or ""

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ─────────────────────────────────────────────────────────────────────────────
# Learning Record
# ─────────────────────────────────────────────────────────────────────────────
class LearningRecord(BaseModel):
    """In-memory projection of a record; the ledger stays authoritative."""
    id: str
    encrypted_score: str
    timestamp: int
    owner: str
    subject: str
    status: RecordStatus = RecordStatus.PENDING
    study_hours: float = Field(default=0, ge=0)
    description: str = ""

    @classmethod
    def from_blob(cls, record_id: str, blob: RecordBlob) -> "LearningRecord":
        return cls(
            id=record_id,
            encrypted_score=blob.score,
            timestamp=blob.timestamp,
            owner=blob.owner,
            subject=blob.subject,
            status=blob.status,
            study_hours=blob.study_hours,
            description=blob.description,
        )

    def to_blob(self) -> RecordBlob:
        return RecordBlob(
            score=self.encrypted_score,
            timestamp=self.timestamp,
            owner=self.owner,
            subject=self.subject,
            status=self.status,
            study_hours=self.study_hours,
            description=self.description,
        )

    def is_owned_by(self, caller: Optional[str]) -> bool:
        # Wallet addresses compare case-insensitively.
        if not caller:
            return False
        return caller.lower() == self.owner.lower()


# ─────────────────────────────────────────────────────────────────────────────
# Operation Status
# ─────────────────────────────────────────────────────────────────────────────
class TransactionStatus(BaseModel):
    """Three-phase status banner for a lifecycle operation."""
    model_config = ConfigDict(frozen=True)

    visible: bool = False
    phase: OperationPhase = OperationPhase.PENDING
    message: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Dashboard Models
# ─────────────────────────────────────────────────────────────────────────────
class SubjectCount(BaseModel):
    subject: str
    count: int


class DashboardStats(BaseModel):
    """Aggregate view over a wallet-agnostic record listing."""
    total_records: int = 0
    pending_count: int = 0
    analyzed_count: int = 0
    archived_count: int = 0
    total_study_hours: float = 0.0
    average_score: Optional[float] = None
    subjects_covered: int = 0
    top_subjects: list[SubjectCount] = []
    recent_performance: list[float] = []


# ─────────────────────────────────────────────────────────────────────────────
# Study Recommendation
# ─────────────────────────────────────────────────────────────────────────────
FOCUS_AREAS: tuple[str, ...] = (
    "key concepts",
    "practice problems",
    "theoretical foundations",
)


class StudyRecommendation(BaseModel):
    """Advice derived from a revealed score. Never written to the ledger."""
    model_config = ConfigDict(frozen=True)

    record_id: str
    subject: str
    score: float
    focus_area: str
    suggested_study_hours: int
    message: str
