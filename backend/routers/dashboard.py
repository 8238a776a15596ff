"""
Backend Router — Dashboard
=============================

GET /dashboard — Aggregate statistics over all records
"""

from __future__ import annotations

import logging

from fastapi import APIRouter

from backend.config import get_dashboard, get_engine, http_error
from fhe_engine.errors import TutorError
from fhe_engine.models import DashboardStats

logger = logging.getLogger("backend.dashboard")
router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard():
    try:
        records = await get_engine().store.list_records()
    except TutorError as exc:
        logger.error("Dashboard failed: %s", exc, exc_info=True)
        raise http_error(exc)
    return get_dashboard().compute(records)
