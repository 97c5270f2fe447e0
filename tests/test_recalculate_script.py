"""Tests for the aggregate backfill script."""

import pytest
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.data.pledges.models import Pledge
from app.services.aggregates import AggregateRecalculator
from scripts.recalculate_aggregates import recalculate_aggregates


class TestRecalculateAggregates:
    """Tests for recalculate_aggregates."""

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(self, db, make_pledge):
        pledge = await make_pledge(original_amount="400")
        pledge.total_paid = Decimal("123")
        pledge.balance = Decimal("277")
        await db.commit()
        pledge_id = pledge.id

        stats = await recalculate_aggregates(db, dry_run=True)

        assert stats == {"checked": 1, "changed": 1, "failed": 0}
        stored = await db.get(Pledge, pledge_id, populate_existing=True)
        assert stored.total_paid == Decimal("123.00")

    @pytest.mark.asyncio
    async def test_live_run_repairs_totals(self, db, make_pledge, make_plan):
        pledge = await make_pledge(original_amount="400")
        await make_plan(pledge, total_planned_amount="400")
        pledge.total_paid = Decimal("123")
        pledge.balance = Decimal("277")
        await db.commit()
        pledge_id = pledge.id

        stats = await recalculate_aggregates(db, dry_run=False)

        assert stats["checked"] == 2
        assert stats["failed"] == 0
        stored = await db.get(Pledge, pledge_id, populate_existing=True)
        assert stored.total_paid == Decimal("0.00")
        assert stored.balance == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_missing_entity_is_reported(self, db):
        stats = await recalculate_aggregates(db, pledge_id="plg_missing", dry_run=False)

        assert stats == {"checked": 1, "changed": 0, "failed": 1}

    @pytest.mark.asyncio
    async def test_database_error_does_not_stop_the_run(self, db, make_pledge):
        broken = await make_pledge(original_amount="100")
        healthy = await make_pledge(original_amount="200")
        healthy.total_paid = Decimal("50")
        await db.commit()
        broken_id, healthy_id = broken.id, healthy.id
        real_recalculate = AggregateRecalculator.recalculate_pledge

        async def fail_for_broken(self, pledge_id):
            if pledge_id == broken_id:
                raise OperationalError("SELECT pledges", {}, Exception("connection reset"))
            return await real_recalculate(self, pledge_id)

        with patch.object(AggregateRecalculator, "recalculate_pledge", fail_for_broken):
            stats = await recalculate_aggregates(db, dry_run=False)

        assert stats == {"checked": 2, "changed": 1, "failed": 1}
        stored = await db.get(Pledge, healthy_id, populate_existing=True)
        assert stored.total_paid == Decimal("0.00")
