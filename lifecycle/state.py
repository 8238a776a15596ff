"""
Lifecycle — Application State
===============================

The tutor's client-side state as an explicit immutable value, advanced by a
reducer:

    state' = reduce(state, event)

TutorSession threads that value through the user-facing operations
(submit / analyze / archive / refresh / select / reveal / lock). A reveal
also stores a StudyRecommendation for the record. Operation
failures do not raise from the session: they land in the state as an
``error`` status with a readable message, and a failed reveal leaves the
value encrypted.
"""

from __future__ import annotations

import logging
import random
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from decryption.protocol import ChallengeContext, DecryptionSession, Signer
from decryption.verifier import SignatureVerifier
from fhe_engine.errors import TutorError
from fhe_engine.models import LearningRecord, OperationPhase, StudyRecommendation, TransactionStatus
from lifecycle.analytics import recommend_study
from lifecycle.engine import LifecycleEngine

logger = logging.getLogger("lifecycle.state")

MSG_SUBMIT_PENDING = "Encrypting learning data with FHE..."
MSG_SUBMIT_SUCCESS = "Learning data submitted securely!"
MSG_ANALYZE_PENDING = "Analyzing learning data with FHE..."
MSG_ANALYZE_SUCCESS = "FHE analysis completed successfully!"
MSG_ARCHIVE_PENDING = "Archiving learning data..."
MSG_ARCHIVE_SUCCESS = "Record archived successfully!"


# ─────────────────────────────────────────────────────────────────────────────
# State & Events
# ─────────────────────────────────────────────────────────────────────────────
class TutorState(BaseModel):
    model_config = ConfigDict(frozen=True)

    records: tuple[LearningRecord, ...] = ()
    selected_record_id: Optional[str] = None
    revealed_record_id: Optional[str] = None
    revealed_value: Optional[float] = None
    recommendation: Optional[StudyRecommendation] = None
    transaction: TransactionStatus = TransactionStatus()

    @property
    def selected_record(self) -> Optional[LearningRecord]:
        for record in self.records:
            if record.id == self.selected_record_id:
                return record
        return None


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class RecordsLoaded(_Event):
    records: tuple[LearningRecord, ...]


class RecordSelected(_Event):
    record_id: str


class SelectionCleared(_Event):
    pass


class OperationStarted(_Event):
    message: str


class OperationSucceeded(_Event):
    message: str


class OperationFailed(_Event):
    message: str


class StatusDismissed(_Event):
    pass


class ValueRevealed(_Event):
    record_id: str
    value: float
    recommendation: Optional[StudyRecommendation] = None


class ValueLocked(_Event):
    pass


Event = Union[
    RecordsLoaded,
    RecordSelected,
    SelectionCleared,
    OperationStarted,
    OperationSucceeded,
    OperationFailed,
    StatusDismissed,
    ValueRevealed,
    ValueLocked,
]


def _status(phase: OperationPhase, message: str) -> TransactionStatus:
    return TransactionStatus(visible=True, phase=phase, message=message)


def reduce(state: TutorState, event: Event) -> TutorState:
    """Return the state that follows ``event``; ``state`` is never mutated."""
    if isinstance(event, RecordsLoaded):
        return state.model_copy(update={"records": tuple(event.records)})
    if isinstance(event, RecordSelected):
        if event.record_id == state.selected_record_id:
            return state
        return state.model_copy(update={
            "selected_record_id": event.record_id,
            "revealed_record_id": None,
            "revealed_value": None,
            "recommendation": None,
        })
    if isinstance(event, SelectionCleared):
        return state.model_copy(update={
            "selected_record_id": None,
            "revealed_record_id": None,
            "revealed_value": None,
            "recommendation": None,
        })
    if isinstance(event, OperationStarted):
        return state.model_copy(update={"transaction": _status(OperationPhase.PENDING, event.message)})
    if isinstance(event, OperationSucceeded):
        return state.model_copy(update={"transaction": _status(OperationPhase.SUCCESS, event.message)})
    if isinstance(event, OperationFailed):
        return state.model_copy(update={"transaction": _status(OperationPhase.ERROR, event.message)})
    if isinstance(event, StatusDismissed):
        return state.model_copy(update={"transaction": TransactionStatus()})
    if isinstance(event, ValueRevealed):
        return state.model_copy(update={
            "revealed_record_id": event.record_id,
            "revealed_value": event.value,
            "recommendation": event.recommendation,
        })
    if isinstance(event, ValueLocked):
        return state.model_copy(update={
            "revealed_record_id": None,
            "revealed_value": None,
            "recommendation": None,
        })
    raise TypeError(f"Unknown event: {event!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Session
# ─────────────────────────────────────────────────────────────────────────────
class TutorSession:
    """Drives a LifecycleEngine on behalf of one connected wallet."""

    def __init__(
        self,
        engine: LifecycleEngine,
        wallet: Optional[str] = None,
        *,
        settle_seconds: float = 1.5,
        verifier: Optional[SignatureVerifier] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.engine = engine
        self.wallet = wallet
        self.settle_seconds = settle_seconds
        self.verifier = verifier
        self.rng = rng
        self.state = TutorState()

    def dispatch(self, event: Event) -> TutorState:
        self.state = reduce(self.state, event)
        return self.state

    def _require_wallet(self) -> Optional[str]:
        if not self.wallet:
            self.dispatch(OperationFailed(message="Please connect wallet first"))
            return None
        return self.wallet

    async def refresh(self) -> TutorState:
        try:
            records = await self.engine.store.list_records()
        except TutorError as exc:
            logger.error("Error loading records: %s", exc)
            return self.state
        return self.dispatch(RecordsLoaded(records=tuple(records)))

    async def submit(
        self,
        subject: str,
        test_score: Optional[float],
        study_hours: float = 0,
        description: str = "",
    ) -> TutorState:
        owner = self._require_wallet()
        if owner is None:
            return self.state

        self.dispatch(OperationStarted(message=MSG_SUBMIT_PENDING))
        try:
            await self.engine.submit(owner, subject, test_score, study_hours, description)
        except TutorError as exc:
            return self.dispatch(OperationFailed(message=f"Submission failed: {exc}"))

        self.dispatch(OperationSucceeded(message=MSG_SUBMIT_SUCCESS))
        return await self.refresh()

    async def _transition(
        self, action: str, record_id: str, pending: str, success: str, failure: str
    ) -> TutorState:
        caller = self._require_wallet()
        if caller is None:
            return self.state

        self.dispatch(OperationStarted(message=pending))
        try:
            await getattr(self.engine, action)(record_id, caller)
        except TutorError as exc:
            return self.dispatch(OperationFailed(message=f"{failure}: {exc}"))

        self.dispatch(OperationSucceeded(message=success))
        return await self.refresh()

    async def analyze(self, record_id: str) -> TutorState:
        return await self._transition(
            "analyze", record_id, MSG_ANALYZE_PENDING, MSG_ANALYZE_SUCCESS, "Analysis failed"
        )

    async def archive(self, record_id: str) -> TutorState:
        return await self._transition(
            "archive", record_id, MSG_ARCHIVE_PENDING, MSG_ARCHIVE_SUCCESS, "Archive failed"
        )

    def select(self, record_id: str) -> TutorState:
        return self.dispatch(RecordSelected(record_id=record_id))

    def close(self) -> TutorState:
        return self.dispatch(SelectionCleared())

    def dismiss_status(self) -> TutorState:
        return self.dispatch(StatusDismissed())

    async def reveal(self, signer: Signer, context: ChallengeContext) -> TutorState:
        """Decrypt the selected record's score after a wallet signature."""
        record = self.state.selected_record
        if record is None or self._require_wallet() is None:
            return self.state

        session = DecryptionSession(
            context,
            self.engine.codec,
            verifier=self.verifier,
            settle_seconds=self.settle_seconds,
        )
        try:
            revealed = await session.run(record.encrypted_score, signer, record.id)
        except TutorError as exc:
            logger.error("Decryption failed: %s", exc)
            return self.state
        return self.dispatch(ValueRevealed(
            record_id=record.id,
            value=revealed.value,
            recommendation=recommend_study(record, revealed.value, self.rng),
        ))

    def lock(self) -> TutorState:
        return self.dispatch(ValueLocked())
