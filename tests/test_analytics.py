import random

import pytest

from fhe_engine.codec import SimulatedFHECodec
from fhe_engine.models import FOCUS_AREAS, LearningRecord, RecordStatus
from lifecycle.analytics import DashboardEngine, compute_dashboard, recommend_study

codec = SimulatedFHECodec()


def _record(n: int, subject: str, score: float, status=RecordStatus.PENDING, hours: float = 1) -> LearningRecord:
    return LearningRecord(
        id=f"r{n}",
        encrypted_score=codec.encode(score),
        timestamp=1_000 + n,
        owner="0xA",
        subject=subject,
        status=status,
        study_hours=hours,
    )


def test_empty_listing() -> None:
    stats = compute_dashboard([])
    assert stats.total_records == 0
    assert stats.average_score is None
    assert stats.top_subjects == []
    assert stats.recent_performance == []


def test_counts_and_totals() -> None:
    records = [
        _record(1, "Physics", 60, RecordStatus.PENDING, 2),
        _record(2, "Physics", 70, RecordStatus.ANALYZED, 3.5),
        _record(3, "History", 80, RecordStatus.ARCHIVED, 0),
    ]
    stats = DashboardEngine(codec).compute(records)
    assert (stats.pending_count, stats.analyzed_count, stats.archived_count) == (1, 1, 1)
    assert stats.total_records == 3
    assert stats.total_study_hours == pytest.approx(5.5)
    assert stats.average_score == pytest.approx(70)
    assert stats.subjects_covered == 2


def test_top_subjects_keep_first_seen_order_on_ties() -> None:
    subjects = ["Biology", "Physics", "Physics", "History", "Economics", "Languages", "Chemistry", "Biology"]
    records = [_record(i, s, 50) for i, s in enumerate(subjects)]
    top = compute_dashboard(records).top_subjects
    assert [(t.subject, t.count) for t in top] == [
        ("Biology", 2),
        ("Physics", 2),
        ("History", 1),
        ("Economics", 1),
        ("Languages", 1),
    ]


def test_recent_performance_is_newest_five_oldest_first() -> None:
    records = [_record(i, "Physics", 10 * i) for i in range(1, 8)]
    newest_first = sorted(records, key=lambda r: r.timestamp, reverse=True)
    assert compute_dashboard(newest_first).recent_performance == [30, 40, 50, 60, 70]


def test_undecodable_scores_are_left_out() -> None:
    broken = _record(1, "Physics", 0).model_copy(update={"encrypted_score": "FHE-????"})
    stats = compute_dashboard([broken, _record(2, "Physics", 90)])
    assert stats.total_records == 2
    assert stats.average_score == 90
    assert stats.recent_performance == [90]


@pytest.mark.parametrize("hours, suggested", [(0, 0), (3, 4), (5, 6), (2.5, 3), (10, 12), (7, 9)])
def test_recommended_hours_round_up_a_fifth_more(hours: float, suggested: int) -> None:
    advice = recommend_study(_record(1, "Physics", 60, hours=hours), 60)
    assert advice.suggested_study_hours == suggested


def test_recommendation_message_names_score_subject_and_focus() -> None:
    advice = recommend_study(_record(4, "Biology", 0), 81.25, random.Random(11))
    assert advice.record_id == "r4"
    assert advice.subject == "Biology"
    assert advice.score == 81.25
    assert advice.focus_area in FOCUS_AREAS
    assert advice.message == (
        f"Based on your score of 81.2% in Biology, we recommend focusing on {advice.focus_area}."
    )


def test_recommendation_focus_is_reproducible_with_a_seed() -> None:
    record = _record(1, "Physics", 60)
    picks = {recommend_study(record, 60, random.Random(seed)).focus_area for seed in range(40)}
    assert picks == set(FOCUS_AREAS)
    assert (
        recommend_study(record, 60, random.Random(5)).focus_area
        == recommend_study(record, 60, random.Random(5)).focus_area
    )
