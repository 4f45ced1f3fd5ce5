"""
Export estimates from Firestore to JSON.

Exports a single estimate by ID, or every estimate owned by a user. With
--check-totals the stored subtotals are re-summed and any drift is reported,
which is handy after editing documents by hand in the emulator UI.

Usage (Firestore emulator):
  export FIRESTORE_EMULATOR_HOST="127.0.0.1:8081"
  export GCLOUD_PROJECT="waterproof-estimator-dev"
  python scripts/export_estimate.py --estimate-id abc123 --out estimate.json
  python scripts/export_estimate.py --user-id uid-1 --check-totals
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import structlog

from config.logging_config import configure_logging
from config.secrets import DEFAULT_PROJECT_ID
from services import pricing_engine
from services.firestore_service import FirestoreService

logger = structlog.get_logger(__name__)

TOTALS_TOLERANCE = 0.01


def _json_safe(value: Any) -> Any:
    """Convert Firestore types to JSON-serializable values."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return str(value)


def _check_emulator_reachable() -> None:
    """Fail fast if FIRESTORE_EMULATOR_HOST is set but not reachable.

    firebase-admin will otherwise block on network calls which feels like a hang.
    """
    host = os.environ.get("FIRESTORE_EMULATOR_HOST")
    if not host or ":" not in host:
        return
    h, p = host.rsplit(":", 1)
    try:
        with socket.create_connection((h, int(p)), timeout=1.5):
            return
    except (OSError, ValueError) as e:
        raise RuntimeError(
            f"FIRESTORE_EMULATOR_HOST is set to '{host}' but it's not reachable. "
            f"Is the Firestore emulator running? Underlying error: {e}"
        )


def check_totals(estimate: Dict[str, Any]) -> List[str]:
    """Compare stored subtotals with freshly summed ones."""
    ai_subtotal = pricing_engine.resolve_ai_subtotal(estimate.get("ai_analysis"), estimate)
    totals = pricing_engine.compute_totals(
        estimate.get("manual_entries"), estimate.get("materials"), ai_subtotal
    )

    problems = []
    for name in ("materials_subtotal", "manual_entries_subtotal", "grand_total"):
        stored = estimate.get(name) or 0.0
        expected = getattr(totals, name)
        if abs(stored - expected) > TOTALS_TOLERANCE:
            problems.append(f"{name}: stored {stored:.2f}, expected {expected:.2f}")
    return problems


async def _load(args: argparse.Namespace) -> List[Dict[str, Any]]:
    store = FirestoreService()
    if args.estimate_id:
        estimate = await store.get_estimate(args.estimate_id)
        return [estimate] if estimate else []
    return await store.list_estimates(args.user_id)


def main() -> int:
    parser = argparse.ArgumentParser(description="Export Firestore estimates to JSON")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--estimate-id", help="Estimate document ID")
    target.add_argument("--user-id", help="Export every estimate owned by this user")
    parser.add_argument("--out", required=False, help="Output file path (defaults to ./estimate-export.json)")
    parser.add_argument(
        "--project-id",
        required=False,
        help="GCP/Firebase project id (if not set, uses GCLOUD_PROJECT / FIREBASE_PROJECT_ID)",
    )
    parser.add_argument(
        "--check-totals",
        action="store_true",
        help="Re-sum materials, manual entries and grand total and report drift",
    )
    args = parser.parse_args()

    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    out_path = args.out or "estimate-export.json"
    project_id = (
        args.project_id
        or os.environ.get("GCLOUD_PROJECT")
        or os.environ.get("FIREBASE_PROJECT_ID")
        or DEFAULT_PROJECT_ID
    )

    import firebase_admin

    try:
        _check_emulator_reachable()
    except RuntimeError as e:
        print(str(e))
        return 3

    if not firebase_admin._apps:
        # For emulator usage, credentials are not required. Providing projectId helps routing.
        firebase_admin.initialize_app(options={"projectId": project_id})

    estimates = asyncio.run(_load(args))
    if not estimates:
        print("No estimates found")
        return 2

    exit_code = 0
    if args.check_totals:
        for estimate in estimates:
            problems = check_totals(estimate)
            if problems:
                exit_code = 1
                logger.warning("estimate_totals_drift", estimate_id=estimate["id"], problems=problems)

    export = {
        "projectId": project_id,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
        "count": len(estimates),
        "estimates": _json_safe(estimates),
    }

    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(export, f, indent=2, sort_keys=True)

    print(f"Wrote {len(estimates)} estimate(s) to {out_path}")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
