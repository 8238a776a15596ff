"""Lifecycle — Package."""

from lifecycle.analytics import DashboardEngine, compute_dashboard, recommend_study
from lifecycle.engine import LifecycleEngine
from lifecycle.state import TutorSession, TutorState, reduce

__all__ = [
    "DashboardEngine",
    "LifecycleEngine",
    "TutorSession",
    "TutorState",
    "compute_dashboard",
    "recommend_study",
    "reduce",
]
