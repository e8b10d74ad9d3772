"""
Renewal eligibility checks with categorized skip reasons.

Before charging a due subscription, we verify:
  1. A stored card token and COF transaction id exist
  2. The (plan type, interval) pair has a price

A subscription that fails a check is skipped: it is neither charged,
advanced nor penalized, and the skip is reported by category.
"""

from dataclasses import dataclass
from typing import Optional

from redsys_core.engine.plans import MembershipPlan, get_membership_plan
from redsys_core.models.enums import SkipReason


@dataclass
class EligibilityResult:
    """Result of an eligibility check."""

    eligible: bool
    skip_reason: Optional[SkipReason] = None
    message: str = ""
    plan: Optional[MembershipPlan] = None


def check_renewal_eligibility(
    card_token: Optional[str],
    cof_txn_id: Optional[str],
    plan_type: Optional[str],
    interval: Optional[str],
) -> EligibilityResult:
    """
    Check whether a due subscription can be charged.

    Args:
        card_token: Stored card reference from the first tokenized payment.
        cof_txn_id: Credential-on-file transaction id from the same payment.
        plan_type: Membership plan ("under25", "over25", "family").
        interval: Billing interval ("monthly" or "annual").

    Returns:
        EligibilityResult with the plan to charge, or a categorized skip reason.
    """
    if not card_token or not cof_txn_id:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.MISSING_TOKEN,
            message="Missing stored card token or COF transaction id",
        )

    plan = get_membership_plan(plan_type, interval)
    if plan is None:
        return EligibilityResult(
            eligible=False,
            skip_reason=SkipReason.UNKNOWN_PLAN,
            message=f"Unknown plan: {plan_type}_{interval}",
        )

    return EligibilityResult(eligible=True, plan=plan)
