"""FHE Engine — Package."""

from fhe_engine.codec import CiphertextCodec, SimulatedFHECodec
from fhe_engine.errors import (
    FormatError,
    InvalidTransitionError,
    NotFoundError,
    SignatureRejectedError,
    StoreUnavailableError,
    TutorError,
    UnauthorizedError,
    ValidationError,
    VersionConflictError,
)
from fhe_engine.models import (
    SUBJECTS,
    LearningRecord,
    OperationPhase,
    RecordBlob,
    RecordStatus,
    TransactionStatus,
    DashboardStats,
    SubjectCount,
    StudyRecommendation,
)

__all__ = [
    "CiphertextCodec",
    "SimulatedFHECodec",
    "FormatError",
    "InvalidTransitionError",
    "NotFoundError",
    "SignatureRejectedError",
    "StoreUnavailableError",
    "TutorError",
    "UnauthorizedError",
    "ValidationError",
    "VersionConflictError",
    "SUBJECTS",
    "LearningRecord",
    "OperationPhase",
    "RecordBlob",
    "RecordStatus",
    "TransactionStatus",
    "DashboardStats",
    "SubjectCount",
    "StudyRecommendation",
]
