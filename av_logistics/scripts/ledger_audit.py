#!/usr/bin/env python3
"""Availability ledger integrity checks for AV Logistics."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from av_logistics.models.logistics_models import Equipment, EquipmentStatus, EventEquipment
from av_logistics.services.ledger_service import reconcile


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def run_availability_checks(db: Session) -> list[CheckResult]:
    results: list[CheckResult] = []
    for equipment in db.execute(select(Equipment).order_by(Equipment.EquipmentID)).scalars():
        report = reconcile(db, equipment)
        results.append(
            CheckResult(
                f"equipment:{equipment.Reference}",
                report["isConsistent"],
                (
                    f"total={report['quantityTotal']} available={report['quantityAvailable']} "
                    f"expected={report['expectedAvailable']} outstanding={report['quantityOutstanding']} "
                    f"maintenance={report['quantityInMaintenance']}"
                ),
            )
        )
    return results


def run_integrity_checks(db: Session) -> list[CheckResult]:
    checks: list[CheckResult] = []

    out_of_bounds = db.execute(
        select(func.count(Equipment.EquipmentID)).where(
            (Equipment.QuantityAvailable < 0) | (Equipment.QuantityAvailable > Equipment.QuantityTotal)
        )
    ).scalar()
    checks.append(
        CheckResult(
            "equipment:available_out_of_bounds",
            int(out_of_bounds or 0) == 0,
            f"count={int(out_of_bounds or 0)}",
        )
    )

    over_returned = db.execute(
        select(func.count(EventEquipment.ReservationID)).where(
            EventEquipment.QuantityReturned > EventEquipment.QuantityReserved
        )
    ).scalar()
    checks.append(
        CheckResult(
            "reservations:returned_exceeds_reserved",
            int(over_returned or 0) == 0,
            f"count={int(over_returned or 0)}",
        )
    )

    without_history = db.execute(
        select(func.count(Equipment.EquipmentID)).where(
            ~select(EquipmentStatus.StatusID)
            .where(EquipmentStatus.EquipmentID == Equipment.EquipmentID)
            .exists()
        )
    ).scalar()
    checks.append(
        CheckResult(
            "equipment:missing_status_history",
            int(without_history or 0) == 0,
            f"count={int(without_history or 0)}",
        )
    )
    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> bool:
    _print_section(title)
    all_ok = True
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        all_ok = all_ok and row.ok
        print(f"[{status}] {row.name} :: {row.detail}")
    return all_ok


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="AV Logistics availability ledger audit")
    parser.add_argument("--db-url", default=os.environ.get("AV_LOGISTICS_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("AV_LOGISTICS_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    session_factory = sessionmaker(bind=engine, autoflush=False, future=True)
    with session_factory() as db:
        availability_ok = _print_results("Availability Reconciliation", run_availability_checks(db))
        integrity_ok = _print_results("Integrity Checks", run_integrity_checks(db))
    return 0 if availability_ok and integrity_ok else 1


if __name__ == "__main__":
    sys.exit(main())
