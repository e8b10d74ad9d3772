"""Tests for the plan catalog and billing-period arithmetic."""

from datetime import datetime, timezone

import pytest

from redsys_core.engine.plans import MEMBERSHIP_PLANS, add_months, get_membership_plan, next_period_end
from redsys_core.models.enums import BillingInterval, PlanType


def _dt(year, month, day):
    return datetime(year, month, day, 9, 30, tzinfo=timezone.utc)


class TestCatalog:
    def test_every_combination_priced(self):
        assert len(MEMBERSHIP_PLANS) == len(PlanType) * len(BillingInterval)

    def test_prices(self):
        assert get_membership_plan("under25", "monthly").amount_cents == 500
        assert get_membership_plan("under25", "annual").amount_cents == 5000
        assert get_membership_plan("over25", "monthly").amount_cents == 1000
        assert get_membership_plan("over25", "annual").amount_cents == 10000
        assert get_membership_plan("family", "monthly").amount_cents == 1500
        assert get_membership_plan("family", "annual").amount_cents == 15000

    def test_key(self):
        assert get_membership_plan("family", "annual").key == "family_annual"

    def test_unknown(self):
        assert get_membership_plan("vip", "monthly") is None
        assert get_membership_plan("over25", None) is None


class TestPeriods:
    def test_monthly(self):
        assert next_period_end(_dt(2025, 3, 14), "monthly") == _dt(2025, 4, 14)

    def test_annual(self):
        assert next_period_end(_dt(2025, 3, 14), "annual") == _dt(2026, 3, 14)

    def test_year_rollover(self):
        assert next_period_end(_dt(2025, 12, 20), "monthly") == _dt(2026, 1, 20)

    def test_clamps_to_month_end(self):
        assert add_months(_dt(2025, 1, 31), 1) == _dt(2025, 2, 28)
        assert add_months(_dt(2024, 1, 31), 1) == _dt(2024, 2, 29)
        assert add_months(_dt(2024, 2, 29), 12) == _dt(2025, 2, 28)

    def test_keeps_time_and_zone(self):
        result = next_period_end(_dt(2025, 3, 14), "monthly")
        assert (result.hour, result.minute, result.tzinfo) == (9, 30, timezone.utc)

    def test_unknown_interval(self):
        with pytest.raises(ValueError):
            next_period_end(_dt(2025, 3, 14), "weekly")
