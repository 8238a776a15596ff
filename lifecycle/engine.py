"""
Lifecycle — Record State Machine
==================================

Submits learning records and moves them through their lifecycle:

    pending ──► analyzed ──► archived
       └───────────────────────┘

``archived`` is terminal and nothing returns to ``pending``. Mutating
operations are restricted to the record owner. Checks run against the
record as just read from the ledger, inside the store's read-mutate-write,
so a rejected operation writes nothing.

Writes are fire-once: the engine never retries, and a failure reported after
the write was issued may still have landed on the ledger.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Optional, Sequence

from fhe_engine.codec import CiphertextCodec, SimulatedFHECodec
from fhe_engine.errors import InvalidTransitionError, UnauthorizedError, ValidationError
from fhe_engine.models import (
    SUBJECTS,
    LearningRecord,
    RecordBlob,
    RecordStatus,
    can_transition,
)
from record_store.store import RecordStore

logger = logging.getLogger("lifecycle.engine")


class LifecycleEngine:
    """Lifecycle orchestrator over a record store and a value codec.

    Usage:
        engine = LifecycleEngine(RecordStore(InMemoryLedger()))
        record_id = await engine.submit("0xA", "Physics", 72, 3)
        await engine.analyze(record_id, "0xA")
        await engine.archive(record_id, "0xA")
    """

    def __init__(
        self,
        store: RecordStore,
        codec: Optional[CiphertextCodec] = None,
        *,
        subjects: Sequence[str] = SUBJECTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.codec = codec or SimulatedFHECodec()
        self.subjects = tuple(subjects)
        self.clock = clock

    # ── Submit ───────────────────────────────────────────────────────
    async def submit(
        self,
        owner: str,
        subject: str,
        test_score: Optional[float],
        study_hours: float = 0,
        description: str = "",
    ) -> str:
        """Encrypt the score and store a new pending record. Returns its id."""
        if not owner:
            raise ValidationError("An owner address is required")
        if not subject or not subject.strip():
            raise ValidationError("Subject is required")
        if subject not in self.subjects:
            raise ValidationError(f"Unknown subject '{subject}'")
        if test_score is None:
            raise ValidationError("Test score is required")
        if not math.isfinite(test_score):
            raise ValidationError("Test score must be a finite number")
        if study_hours is None or not math.isfinite(study_hours) or study_hours < 0:
            raise ValidationError("Study hours must be a non-negative number")

        blob = RecordBlob(
            score=self.codec.encode(test_score),
            timestamp=int(self.clock()),
            owner=owner,
            subject=subject,
            status=RecordStatus.PENDING,
            study_hours=study_hours,
            description=description or "",
        )
        record_id = await self.store.create_record(blob)
        logger.info("Submitted %s record %s for %s", subject, record_id, owner)
        return record_id

    # ── Transitions ──────────────────────────────────────────────────
    @staticmethod
    def _guard(record: LearningRecord, caller: str, target: RecordStatus) -> None:
        if not record.is_owned_by(caller):
            raise UnauthorizedError(f"{caller or 'anonymous'} does not own record {record.id}")
        if not can_transition(record.status, target):
            raise InvalidTransitionError(record.status.value, target.value)

    async def analyze(self, record_id: str, caller: str) -> LearningRecord:
        """Run the encrypted analysis on a pending record."""

        def mutate(record: LearningRecord) -> LearningRecord:
            self._guard(record, caller, RecordStatus.ANALYZED)
            record.encrypted_score = self.codec.transform(record.encrypted_score, "analyze")
            record.status = RecordStatus.ANALYZED
            return record

        updated = await self.store.update_record(record_id, mutate)
        logger.info("Analyzed record %s", record_id)
        return updated

    async def archive(self, record_id: str, caller: str) -> LearningRecord:
        """Archive a pending or analyzed record; the ciphertext is kept as is."""

        def mutate(record: LearningRecord) -> LearningRecord:
            self._guard(record, caller, RecordStatus.ARCHIVED)
            record.status = RecordStatus.ARCHIVED
            return record

        updated = await self.store.update_record(record_id, mutate)
        logger.info("Archived record %s", record_id)
        return updated
