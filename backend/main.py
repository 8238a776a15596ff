"""
FHE Tutor — FastAPI Backend
=============================

REST API over the encrypted learning-record ledger.

Endpoints:
    GET  /                              — Service info
    GET  /subjects                      — Supported subjects
    GET  /records                       — List records (newest first)
    GET  /records/{id}                  — Fetch one record
    POST /records                       — Submit a new encrypted record
    POST /records/{id}/analyze          — Encrypted analysis (owner only)
    POST /records/{id}/archive          — Archive (owner only)
    GET  /dashboard                     — Aggregate statistics
    POST /decrypt/challenge             — Start a signature-gated reveal
    POST /decrypt/{session}/signature   — Finish it with a wallet signature
    DELETE /decrypt/{session}           — Cancel it

Run:
    uvicorn backend.main:app --reload --port 8000
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import config
from backend.routers import dashboard, decryption, records

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("backend")

# ─────────────────────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="FHE Tutor API",
    description="Encrypted learning records on a key/value ledger with signature-gated reveal",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records.router)
app.include_router(dashboard.router)
app.include_router(decryption.router)


@app.get("/")
async def root():
    return {
        "name": "FHE Tutor API",
        "version": "1.0.0",
        "ledger": config.LEDGER_BACKEND,
        "app_id": config.LEDGER_APP_ID or None,
        "chain_id": config.CHAIN_ID,
    }
