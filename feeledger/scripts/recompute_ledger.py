"""
Re-derive paid_amount and status of every fee ledger entry from its payment list.

Safe to run repeatedly: entries whose cached values already match are left alone.
Usage: python -m feeledger.scripts.recompute_ledger [--dry-run]
"""

import argparse
import asyncio
from decimal import Decimal
from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Ensure all models are loaded so ORM relationships resolve (e.g. LedgerEntry -> Student)
from feeledger.core.models import LedgerEntry
from feeledger.api.v1.fee_ledger.service import recompute
from feeledger.core.aggregation import to_decimal
from feeledger.db.session import AsyncSessionLocal

Drift = Tuple[LedgerEntry, Decimal, str]


async def find_drifted_entries(session: AsyncSession) -> List[Drift]:
    """Recompute every entry in place; return (entry, old paid_amount, old status) for those that changed."""
    entries = (await session.execute(select(LedgerEntry))).scalars().all()
    drifted: List[Drift] = []
    for entry in entries:
        old_paid, old_status = to_decimal(entry.paid_amount), entry.status
        recompute(entry)
        if to_decimal(entry.paid_amount) != old_paid or entry.status != old_status:
            drifted.append((entry, old_paid, old_status))
    return drifted


async def recompute_ledger(dry_run: bool = False) -> int:
    async with AsyncSessionLocal() as session:
        drifted = await find_drifted_entries(session)
        if not drifted:
            print("All ledger entries are consistent. Nothing to do.")
            return 0

        for entry, old_paid, old_status in drifted:
            print(
                f"  {entry.student_prn} / {entry.category_name} ({entry.academic_year or '-'}): "
                f"{old_paid} {old_status} -> {entry.paid_amount} {entry.status}"
            )

        if dry_run:
            await session.rollback()
            print(f"Dry run. {len(drifted)} entr(y/ies) would be updated.")
        else:
            await session.commit()
            print(f"Done. Updated {len(drifted)} entr(y/ies).")
        return len(drifted)


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute fee ledger totals and statuses from payments")
    parser.add_argument("--dry-run", action="store_true", help="report drift without writing")
    args = parser.parse_args()
    asyncio.run(recompute_ledger(dry_run=args.dry_run))


if __name__ == "__main__":
    main()
