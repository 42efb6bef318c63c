"""
backend/verify.py

Purpose:
    CLI entrypoint for the ledger integrity check. Exit code 0 means every
    wallet matches its ledger and every finished market is fully settled.

Usage:
    cd backend && python verify.py
    cd backend && python verify.py --json

Dependencies:
    - wicketbook.database
    - wicketbook.checks.ledger_check
"""

import argparse
import asyncio
import json
import os
import sys

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from wicketbook.checks.ledger_check import LedgerHealthCheck
from wicketbook.database import close_db, connect_db


def _print_report(report: dict) -> None:
    print(f"\nLedger status: {report['status']}")
    print("-" * 50)
    for step, outcome in report["steps"].items():
        print(f"  {step:<24} {outcome}")
    for key, value in report["details"].items():
        if value:
            print(f"  {key}: {value}")
    if report.get("error"):
        print(f"\n  {report['error']}")


async def main(as_json: bool) -> int:
    try:
        await connect_db()
        report = await LedgerHealthCheck.run()
    finally:
        await close_db()

    if as_json:
        report.pop("traceback", None)
        print(json.dumps(report, indent=2, default=str))
    else:
        _print_report(report)
    return 0 if report["status"] == "HEALTHY" else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Wicketbook ledger integrity check")
    parser.add_argument("--json", action="store_true", help="print the raw report as JSON")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.json)))
