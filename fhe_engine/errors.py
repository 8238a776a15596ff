"""
FHE Engine — Error Taxonomy
=============================

Every failure the tutor core can surface to a caller. Library code raises
these; only the HTTP layer and the interactive session turn them into
user-visible results.
"""

from __future__ import annotations

from typing import Optional


class TutorError(Exception):
    """Base class for all tutor core errors."""


class ValidationError(TutorError):
    """Bad input to a submission."""


class NotFoundError(TutorError):
    """The requested record id has no blob on the ledger."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class UnauthorizedError(TutorError):
    """Caller is not allowed to perform the operation."""


class InvalidTransitionError(TutorError):
    """The requested status transition is not permitted."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move record from '{current}' to '{target}'")
        self.current = current
        self.target = target


class FormatError(TutorError):
    """A ciphertext or ledger blob could not be parsed."""


class StoreUnavailableError(TutorError):
    """The ledger is unreachable, not initialized, or kept rejecting writes."""


class SignatureRejectedError(TutorError):
    """The external signer declined, or the user cancelled the request."""


class VersionConflictError(TutorError):
    """A compare-and-set write lost against a concurrent writer."""

    def __init__(self, key: str, expected: int, actual: Optional[int]) -> None:
        super().__init__(
            f"Version conflict on '{key}': expected {expected}, found {actual}"
        )
        self.key = key
        self.expected = expected
        self.actual = actual
