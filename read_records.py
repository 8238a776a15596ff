"""
FHE Tutor — Read & Audit Ledger Records
=========================================

Reads the key index and every record blob straight from the ledger and
writes them out as JSON, together with an index audit:

    index_length   → ids in record_keys
    duplicate_ids  → ids listed more than once
    missing_blobs  → indexed ids whose record blob is absent
    unparseable    → indexed ids whose blob does not match the schema
    orphan_blobs   → record blobs on the ledger that the index does not list
                     (null when the ledger cannot enumerate its keys)

Ciphertexts are exported as stored; nothing is decrypted.

Usage:
    python read_records.py
    python read_records.py --pretty
    python read_records.py --output records.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from backend import config
from fhe_engine.errors import FormatError
from record_store.ledger import RECORD_KEYS, RECORD_PREFIX, Ledger, record_key
from record_store.store import parse_index, parse_record

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("read_records")


# ─────────────────────────────────────────────────────────────────────────────
# Main logic
# ─────────────────────────────────────────────────────────────────────────────
async def read_records(ledger: Ledger) -> dict[str, Any]:
    """Export every indexed record plus an audit of the key index."""
    raw_index = await ledger.get(RECORD_KEYS)
    try:
        listed = json.loads(raw_index.decode("utf-8")) if raw_index.strip() else []
    except (UnicodeDecodeError, json.JSONDecodeError):
        listed = []
    if not isinstance(listed, list):
        listed = []
    duplicates = sorted(i for i, n in Counter(str(x) for x in listed).items() if n > 1)

    records: list[dict[str, Any]] = []
    missing: list[str] = []
    unparseable: list[str] = []

    indexed = parse_index(raw_index)
    for record_id in indexed:
        raw = await ledger.get(record_key(record_id))
        if not raw:
            missing.append(record_id)
            continue
        try:
            records.append(parse_record(record_id, raw).model_dump(mode="json"))
        except FormatError as exc:
            logger.warning("Unparseable record %s: %s", record_id, exc)
            unparseable.append(record_id)

    orphans: Optional[list[str]] = None
    if hasattr(ledger, "list_keys"):
        stored = [k[len(RECORD_PREFIX):] for k in await ledger.list_keys()
                  if k.startswith(RECORD_PREFIX) and k != RECORD_KEYS]
        orphans = sorted(set(stored) - set(indexed))
        if orphans:
            logger.warning("%d record blob(s) are not in the key index", len(orphans))

    return {
        "records": records,
        "audit": {
            "index_length": len(listed),
            "duplicate_ids": duplicates,
            "missing_blobs": missing,
            "unparseable": unparseable,
            "orphan_blobs": orphans,
        },
    }


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────
def main() -> None:
    parser = argparse.ArgumentParser(
        prog="read_records",
        description="Read & audit learning records on the ledger",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print the JSON output",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write JSON output to file instead of stdout",
    )

    args = parser.parse_args()

    try:
        report = asyncio.run(read_records(config.get_engine().store.ledger))

        indent = 2 if args.pretty else None
        json_str = json.dumps(report, indent=indent, ensure_ascii=False)

        if args.output:
            Path(args.output).write_text(json_str, encoding="utf-8")
            logger.info("Written %d records to %s", len(report["records"]), args.output)
        else:
            print(json_str)

    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as exc:
        logger.error("Fatal: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
