"""
Lifecycle — Dashboard Analytics
=================================

Computes the dashboard summary over a record listing:

    • Status counts (pending / analyzed / archived)
    • Total study hours
    • Average score (decoded through the codec)
    • Subject coverage and the five most frequent subjects
    • Recent performance — scores of the five newest records, oldest first

and, for a single revealed score, a StudyRecommendation (focus area plus
suggested study hours).
"""

from __future__ import annotations

import logging
import math
import random
from collections import Counter
from typing import Optional, Sequence

from fhe_engine.codec import CiphertextCodec, SimulatedFHECodec
from fhe_engine.errors import FormatError
from fhe_engine.models import (
    FOCUS_AREAS,
    DashboardStats,
    LearningRecord,
    RecordStatus,
    StudyRecommendation,
    SubjectCount,
)

logger = logging.getLogger("lifecycle.analytics")

TOP_SUBJECTS = 5
RECENT_WINDOW = 5
STUDY_HOURS_FACTOR = 1.2


class DashboardEngine:
    """Aggregates a record listing into DashboardStats."""

    def __init__(self, codec: Optional[CiphertextCodec] = None) -> None:
        self.codec = codec or SimulatedFHECodec()

    def _score(self, record: LearningRecord) -> Optional[float]:
        try:
            return self.codec.decode(record.encrypted_score)
        except FormatError as exc:
            logger.warning("Record %s has an undecodable score: %s", record.id, exc)
            return None

    def compute(self, records: Sequence[LearningRecord]) -> DashboardStats:
        """Build dashboard statistics.

        Parameters
        ----------
        records : Sequence[LearningRecord]
            Listing as returned by the record store (newest first).
        """
        if not records:
            return DashboardStats()

        statuses = Counter(r.status for r in records)

        # Counter keeps first-seen order for equal counts.
        subjects = Counter(r.subject for r in records)
        top = [
            SubjectCount(subject=subject, count=count)
            for subject, count in subjects.most_common(TOP_SUBJECTS)
        ]

        scores = [s for s in (self._score(r) for r in records) if s is not None]
        average = round(sum(scores) / len(scores), 4) if scores else None

        newest = sorted(records, key=lambda r: r.timestamp, reverse=True)[:RECENT_WINDOW]
        recent = [s for s in (self._score(r) for r in reversed(newest)) if s is not None]

        return DashboardStats(
            total_records=len(records),
            pending_count=statuses[RecordStatus.PENDING],
            analyzed_count=statuses[RecordStatus.ANALYZED],
            archived_count=statuses[RecordStatus.ARCHIVED],
            total_study_hours=sum(r.study_hours for r in records),
            average_score=average,
            subjects_covered=len(subjects),
            top_subjects=top,
            recent_performance=recent,
        )


def compute_dashboard(
    records: Sequence[LearningRecord], codec: Optional[CiphertextCodec] = None
) -> DashboardStats:
    return DashboardEngine(codec).compute(records)


def recommend_study(
    record: LearningRecord, score: float, rng: Optional[random.Random] = None
) -> StudyRecommendation:
    """Turn a revealed score into study advice for the record's subject."""
    focus_area = (rng or random).choice(FOCUS_AREAS)
    # Float error must not push an exact product up to the next hour.
    hours = math.ceil(round(record.study_hours * STUDY_HOURS_FACTOR, 9))
    return StudyRecommendation(
        record_id=record.id,
        subject=record.subject,
        score=score,
        focus_area=focus_area,
        suggested_study_hours=hours,
        message=(
            f"Based on your score of {score:.1f}% in {record.subject}, "
            f"we recommend focusing on {focus_area}."
        ),
    )
