"""
Membership plan catalog and billing-period arithmetic.

Prices are fixed per (plan type, interval). A renewal extends the period
from the previous end date, never from "now", so a late batch run keeps the
member's billing day.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from redsys_core.models.enums import BillingInterval, PlanType


@dataclass(frozen=True)
class MembershipPlan:
    plan_type: PlanType
    interval: BillingInterval
    amount_cents: int
    name: str

    @property
    def key(self) -> str:
        return f"{self.plan_type.value}_{self.interval.value}"


MEMBERSHIP_PLANS: dict[tuple[PlanType, BillingInterval], MembershipPlan] = {
    (plan.plan_type, plan.interval): plan
    for plan in (
        MembershipPlan(PlanType.UNDER_25, BillingInterval.MONTHLY, 500, "Joven Mensual"),
        MembershipPlan(PlanType.UNDER_25, BillingInterval.ANNUAL, 5000, "Joven Anual"),
        MembershipPlan(PlanType.OVER_25, BillingInterval.MONTHLY, 1000, "Adulto Mensual"),
        MembershipPlan(PlanType.OVER_25, BillingInterval.ANNUAL, 10000, "Adulto Anual"),
        MembershipPlan(PlanType.FAMILY, BillingInterval.MONTHLY, 1500, "Familiar Mensual"),
        MembershipPlan(PlanType.FAMILY, BillingInterval.ANNUAL, 15000, "Familiar Anual"),
    )
}


def get_membership_plan(plan_type: Optional[str], interval: Optional[str]) -> Optional[MembershipPlan]:
    """Look up a plan; unknown or missing values return None."""
    try:
        return MEMBERSHIP_PLANS.get((PlanType(plan_type), BillingInterval(interval)))
    except ValueError:
        return None


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition, clamping to the last day of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def next_period_end(end_date: datetime, interval: str) -> datetime:
    """
    End of the next billing period: exactly one calendar month or year later.

    Raises:
        ValueError: For an unknown interval.
    """
    interval = BillingInterval(interval)
    if interval == BillingInterval.ANNUAL:
        return add_months(end_date, 12)
    return add_months(end_date, 1)
