#!/usr/bin/env python3
"""Record store overview and integrity checks for the tool checkout dashboard."""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date
from pathlib import Path
from typing import Iterable

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.dashboard_service import employee_name, tool_name
from services.reconciliation_service import IntegrityFinding, Reconciliation, Snapshot, integrity_findings, reconcile
from services.record_store_service import RecordStoreClient, RecordStoreError, load_snapshot


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _print_results(title: str, rows: Iterable[IntegrityFinding]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_record_counts(snapshot: Snapshot) -> None:
    _print_section("Record Counts")
    print(f"Tools: {len(snapshot.tools)}")
    print(f"Employees: {len(snapshot.employees)}")
    print(f"Locations: {len(snapshot.locations)}")
    print(f"Checkouts: {len(snapshot.checkouts)}")
    print(f"Returns: {len(snapshot.returns)}")


def _print_kpis(result: Reconciliation) -> None:
    _print_section(f"KPIs (today={result.today.isoformat()}, horizon={result.horizon_days}d)")
    print(f"Checked out: {result.checked_out_count} of {result.total_tools}")
    print(f"Available: {result.available_count}")
    print(f"Overdue: {len(result.overdue)}")
    print(f"Inspection overdue: {len(result.inspection_overdue)}")
    print(f"Inspection due: {len(result.inspection_due)}")
    print(f"Needs repair: {len(result.repair_needed)}")


def _print_samples(result: Reconciliation, sample_size: int) -> None:
    _print_section("Overdue Checkouts")
    for item in result.overdue[: max(1, sample_size)]:
        entry = item.entry
        print(f"  - {tool_name(entry.tool)} / {employee_name(entry.employee)} :: {item.days_overdue}d")

    _print_section("Recent Activity")
    for item in result.activity[: max(1, sample_size)]:
        stamp = item.date.isoformat() if item.date else "-"
        print(f"  - {stamp} {item.type} {tool_name(item.tool)} / {employee_name(item.employee)}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Tool checkout record store overview")
    parser.add_argument("--base-url", default=os.environ.get("RECORD_STORE_BASE_URL", ""))
    parser.add_argument("--api-key", default=os.environ.get("RECORD_STORE_API_KEY", ""))
    parser.add_argument("--horizon", type=int, default=int(os.environ.get("INSPECTION_HORIZON_DAYS") or 30))
    parser.add_argument("--samples", type=int, default=5)
    args = parser.parse_args()

    api_key = (args.api_key or "").strip()
    if not api_key:
        print("RECORD_STORE_API_KEY is not set. Provide --api-key or export env first.")
        return 2

    client = RecordStoreClient(base_url=(args.base_url or "").strip() or None, api_key=api_key)
    try:
        snapshot = load_snapshot(client)
    except RecordStoreError as exc:
        print(f"Could not load records: {exc}")
        return 3

    result = reconcile(snapshot, date.today(), horizon_days=args.horizon)
    _print_record_counts(snapshot)
    _print_kpis(result)
    _print_results("Integrity Checks", integrity_findings(snapshot))
    _print_samples(result, args.samples)
    return 0


if __name__ == "__main__":
    sys.exit(main())
