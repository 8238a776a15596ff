"""
FHE Tutor — Interaction Script
================================

CLI for the encrypted learning-record ledger, acting as the DEPLOYER wallet.

Usage:
    python interact.py submit <subject> <score> [--hours H] [--description TEXT]
    python interact.py list
    python interact.py analyze <record_id>
    python interact.py archive <record_id>
    python interact.py reveal <record_id>
    python interact.py stats

Environment:
    Reads .env for LEDGER_BACKEND, LEDGER_APP_ID, ALGOD_SERVER, ALGOD_PORT,
    ALGOD_TOKEN and DEPLOYER_MNEMONIC. With the default in-memory ledger,
    records only live for the duration of one command.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from backend import config
from decryption.protocol import ChallengeContext
from decryption.signer import AlgorandAccountSigner
from decryption.verifier import AlgorandSignatureVerifier
from fhe_engine.models import SUBJECTS, OperationPhase
from lifecycle.state import TutorSession, TutorState

# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("fhe_tutor")


# ─────────────────────────────────────────────────────────────────────────────
# Bootstrap
# ─────────────────────────────────────────────────────────────────────────────
def _bootstrap() -> tuple[TutorSession, AlgorandAccountSigner]:
    """Return (session, signer) for the DEPLOYER wallet."""
    phrase = os.environ.get("DEPLOYER_MNEMONIC")
    if not phrase:
        raise SystemExit("DEPLOYER_MNEMONIC is not set")
    signer = AlgorandAccountSigner.from_mnemonic(phrase)

    verifier = AlgorandSignatureVerifier(signer.address) if config.VERIFY_SIGNATURES else None
    session = TutorSession(
        config.get_engine(),
        signer.address,
        settle_seconds=config.DECRYPT_SETTLE_SECONDS,
        verifier=verifier,
    )
    logger.info("Wallet  : %s", signer.address)
    logger.info("Ledger  : %s", config.LEDGER_BACKEND)
    return session, signer


def _report(state: TutorState) -> bool:
    status = state.transaction
    if status.phase is OperationPhase.ERROR:
        logger.error("❌ %s", status.message)
        return False
    logger.info("✅ %s", status.message)
    return True


def _print_records(state: TutorState) -> None:
    logger.info("─" * 60)
    if not state.records:
        logger.info("ℹ️  No learning records found.")
    for record in state.records:
        logger.info("")
        logger.info("  Record %s", record.id)
        logger.info("    Subject     : %s", record.subject)
        logger.info("    Status      : %s", record.status.value)
        logger.info("    Study hours : %s", record.study_hours)
        logger.info("    Owner       : %s", record.owner)
        logger.info("    Ciphertext  : %s", record.encrypted_score)
    logger.info("─" * 60)


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────
async def _run(args: argparse.Namespace) -> bool:
    session, signer = _bootstrap()

    if args.command == "submit":
        return _report(await session.submit(args.subject, args.score, args.hours, args.description))

    if args.command == "analyze":
        return _report(await session.analyze(args.record_id))

    if args.command == "archive":
        return _report(await session.archive(args.record_id))

    state = await session.refresh()

    if args.command == "list":
        _print_records(state)
        return True

    if args.command == "stats":
        stats = config.get_dashboard().compute(state.records)
        logger.info("─" * 60)
        for field, value in stats.model_dump().items():
            logger.info("  %-18s: %s", field, value)
        logger.info("─" * 60)
        return True

    if args.command == "reveal":
        session.select(args.record_id)
        if session.state.selected_record is None:
            logger.error("❌ Record not found: %s", args.record_id)
            return False
        context = ChallengeContext.fresh(
            config.contract_address(), config.CHAIN_ID, config.CHALLENGE_DURATION_DAYS
        )
        state = await session.reveal(signer, context)
        if state.revealed_value is None:
            logger.error("❌ Decryption failed — value stays encrypted")
            return False
        logger.info("🔓 %s → %.1f", args.record_id, state.revealed_value)
        if state.recommendation is not None:
            logger.info("💡 %s (suggested: %d h)", state.recommendation.message,
                        state.recommendation.suggested_study_hours)
        session.lock()
        return True

    raise ValueError(f"Unknown command {args.command}")


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────
def main() -> None:
    parser = argparse.ArgumentParser(
        prog="interact",
        description="FHE Tutor — encrypted learning record CLI",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    submit_parser = subparsers.add_parser("submit", help="Submit an encrypted test score")
    submit_parser.add_argument("subject", type=str, choices=SUBJECTS, help="Subject of the test")
    submit_parser.add_argument("score", type=float, help="Test score")
    submit_parser.add_argument("--hours", type=float, default=0, help="Study hours (default: 0)")
    submit_parser.add_argument("--description", type=str, default="", help="Free-text notes")

    subparsers.add_parser("list", help="List all records, newest first")
    subparsers.add_parser("stats", help="Show dashboard statistics")

    for name, help_text in (
        ("analyze", "Run the encrypted analysis on a pending record"),
        ("archive", "Archive a record"),
        ("reveal", "Decrypt a record's score after signing the challenge"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("record_id", type=str, help="Record id")

    args = parser.parse_args()

    try:
        ok = asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user.")
        sys.exit(130)
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=True)
        sys.exit(1)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
