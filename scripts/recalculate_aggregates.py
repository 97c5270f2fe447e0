#!/usr/bin/env python3
"""
Recalculate Aggregates Script.

Recomputes Pledge and PaymentPlan totals from the completed, received
payments that reference them. Use it to repair totals after a bulk import,
a manual data fix, or a change to recorded exchange rates.

Each pledge and plan is recalculated in its own transaction, so one bad
row (e.g. a missing exchange rate) does not block the rest.

Usage:
    # Dry run (shows what would change)
    python -m scripts.recalculate_aggregates --dry-run

    # Recalculate everything
    python -m scripts.recalculate_aggregates

    # Recalculate one pledge or one plan
    python -m scripts.recalculate_aggregates --pledge-id PLEDGE_ID
    python -m scripts.recalculate_aggregates --plan-id PLAN_ID
"""
import asyncio
import argparse
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import AsyncSessionLocal
from app.data.pledges.models import Pledge, PaymentPlan
from app.services.aggregates import AggregateRecalculator
from app.services.errors import LedgerError


async def _ids(db: AsyncSession, model, only_id: Optional[str]) -> List[str]:
    if only_id:
        return [only_id]
    result = await db.execute(select(model.id).order_by(model.id))
    return list(result.scalars().all())


async def recalculate_aggregates(
    db: AsyncSession,
    pledge_id: Optional[str] = None,
    plan_id: Optional[str] = None,
    dry_run: bool = True,
) -> Dict[str, int]:
    """
    Recalculate pledge and plan totals.

    Args:
        db: Database session
        pledge_id: Only recalculate this pledge
        plan_id: Only recalculate this payment plan
        dry_run: If True, roll back instead of committing

    Returns:
        Counts of entities checked, changed and failed
    """
    print("\n" + "=" * 60)
    print("RECALCULATE AGGREGATES SCRIPT")
    print("=" * 60)

    if dry_run:
        print("\n[DRY RUN MODE - No changes will be made]\n")
    else:
        print("\n[LIVE MODE - Changes will be committed]\n")

    # With only one selector given, leave the other kind alone
    do_pledges = pledge_id is not None or plan_id is None
    do_plans = plan_id is not None or pledge_id is None

    stats = {"checked": 0, "changed": 0, "failed": 0}
    recalculator = AggregateRecalculator(db)

    if do_pledges:
        print("-" * 40)
        print("Pledges")
        print("-" * 40)

        for current_id in await _ids(db, Pledge, pledge_id):
            stats["checked"] += 1
            try:
                before = await db.get(Pledge, current_id, populate_existing=True)
                previous = (before.total_paid, before.balance) if before else None

                totals = await recalculator.recalculate_pledge(current_id)

                if previous != (totals.total_paid, totals.balance):
                    stats["changed"] += 1
                    print(
                        f"  ✓ {current_id}: total_paid {previous[0] if previous else '-'} -> {totals.total_paid}, "
                        f"balance {previous[1] if previous else '-'} -> {totals.balance}"
                    )

                if dry_run:
                    await db.rollback()
                else:
                    await db.commit()
            except LedgerError as e:
                await db.rollback()
                stats["failed"] += 1
                print(f"  ✗ Error recalculating pledge {current_id}: {e.message}")
            except SQLAlchemyError as e:
                await db.rollback()
                stats["failed"] += 1
                print(f"  ✗ Database error recalculating pledge {current_id}: {e}")

    if do_plans:
        print("-" * 40)
        print("Payment Plans")
        print("-" * 40)

        for current_id in await _ids(db, PaymentPlan, plan_id):
            stats["checked"] += 1
            try:
                before = await db.get(PaymentPlan, current_id, populate_existing=True)
                previous = (before.total_paid, before.installments_paid) if before else None

                totals = await recalculator.recalculate_payment_plan(current_id)

                if previous != (totals.total_paid, totals.installments_paid):
                    stats["changed"] += 1
                    print(
                        f"  ✓ {current_id}: total_paid {previous[0] if previous else '-'} -> {totals.total_paid}, "
                        f"installments_paid {previous[1] if previous else '-'} -> {totals.installments_paid}"
                    )

                if dry_run:
                    await db.rollback()
                else:
                    await db.commit()
            except LedgerError as e:
                await db.rollback()
                stats["failed"] += 1
                print(f"  ✗ Error recalculating plan {current_id}: {e.message}")
            except SQLAlchemyError as e:
                await db.rollback()
                stats["failed"] += 1
                print(f"  ✗ Database error recalculating plan {current_id}: {e}")

    # Summary
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"\n{'Would change' if dry_run else 'Changed'}: {stats['changed']} of {stats['checked']}")
    print(f"Failed: {stats['failed']}")
    print("\n" + "=" * 60 + "\n")

    return stats


async def main():
    parser = argparse.ArgumentParser(
        description="Recalculate pledge and payment plan totals from completed payments"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without committing"
    )
    parser.add_argument(
        "--pledge-id",
        type=str,
        default=None,
        help="Only recalculate this pledge"
    )
    parser.add_argument(
        "--plan-id",
        type=str,
        default=None,
        help="Only recalculate this payment plan"
    )

    args = parser.parse_args()

    async with AsyncSessionLocal() as db:
        await recalculate_aggregates(
            db,
            pledge_id=args.pledge_id,
            plan_id=args.plan_id,
            dry_run=args.dry_run
        )


if __name__ == "__main__":
    asyncio.run(main())
