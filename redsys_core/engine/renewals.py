"""
Recurring billing engine: merchant-initiated subscription renewals.

Charges every due subscription with its stored card token, one at a time.
The flow for each subscription:

  1. Eligibility check (stored credentials, known plan price)
  2. Fresh ``R`` order number + ``pending`` transaction (committed first)
  3. MIT charge through the payment operations
  4. Transaction resolved, subscription advanced or demoted

State machine:
  active   -> active (period advanced) | past_due | expired
  past_due -> active (period advanced) | past_due | expired
  canceled -> expired (time-driven sweep, never charged)

Due subscriptions include ``past_due`` ones, so a failed renewal is retried
on the next run until the failure limit expires it. A successful charge
extends ``end_date`` by one interval from the previous end date, resets the
failure counter, and records the order. A failed charge leaves ``end_date``
untouched.

Each subscription is processed in isolation: any error is contained to that
subscription and the loop continues. The engine keeps no state across runs.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from redsys_core.config import settings
from redsys_core.engine.eligibility import check_renewal_eligibility
from redsys_core.engine.membership import MembershipFlagHook, TransitionHook
from redsys_core.engine.operations import PaymentOperations, PaymentResult
from redsys_core.engine.plans import MembershipPlan, next_period_end
from redsys_core.models.enums import (
    OrderTag,
    PaymentContext,
    PaymentStatus,
    RunStatus,
    SubscriptionStatus,
    TransactionType,
)
from redsys_core.protocol.order_number import generate_order_number
from redsys_core.store import BillingStore, SubscriptionRecord

logger = logging.getLogger("redsys_core.renewals")

DUE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE)


@dataclass
class RenewalResult:
    """Outcome for one due subscription."""

    subscription_id: str
    member_id: str
    plan_type: str
    interval: str
    outcome: str  # "renewed", "failed", "skipped", "dry_run", "error"
    success: bool = False
    order: Optional[str] = None
    amount_cents: Optional[int] = None
    response_code: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    new_status: Optional[str] = None
    new_end_date: Optional[datetime] = None


@dataclass
class RenewalRunSummary:
    processed_at: datetime
    dry_run: bool
    run_id: Optional[str] = None
    total_due: int = 0
    total_processed: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    skip_breakdown: dict[str, int] = field(default_factory=dict)
    results: list[RenewalResult] = field(default_factory=list)


@dataclass
class SweepResult:
    expired: int = 0
    subscription_ids: list[str] = field(default_factory=list)


class RecurringBillingEngine:
    """
    Renews due subscriptions and expires lapsed cancellations.

    Args:
        store: Transaction/subscription store handle.
        operations: Payment operations bound to a gateway.
        on_transition: Hook called once per subscription status transition
            (defaults to syncing the member's membership flag).
        batch_limit: Max subscriptions charged per run.
        max_failures: Consecutive failed renewals before expiry.
        currency: ISO 4217 numeric currency for transaction records.
    """

    def __init__(
        self,
        store: BillingStore,
        operations: PaymentOperations,
        on_transition: Optional[TransitionHook] = None,
        batch_limit: int = settings.renewal_batch_limit,
        max_failures: int = settings.max_renewal_failures,
        currency: str = settings.redsys_currency,
    ):
        self._store = store
        self._operations = operations
        self._on_transition = on_transition or MembershipFlagHook(store)
        self._batch_limit = batch_limit
        self._max_failures = max_failures
        self._currency = currency

    async def process_renewals(
        self,
        dry_run: bool = False,
        limit: Optional[int] = None,
    ) -> RenewalRunSummary:
        """
        Charge every subscription that is due.

        Args:
            dry_run: Only report what would be charged; no writes, no charges.
            limit: Batch size override.

        Returns:
            Summary with per-subscription results.
        """
        now = self._store.now()
        summary = RenewalRunSummary(processed_at=now, dry_run=dry_run)

        due = await self._store.due_subscriptions(now, limit or self._batch_limit, DUE_STATUSES)
        summary.total_due = len(due)

        if not due:
            logger.info("No subscriptions due for renewal")
            return summary

        if not dry_run:
            summary.run_id = await self._store.start_run()
            await self._store.audit("run_started", run_id=summary.run_id, details={"due": len(due)})

        logger.info(
            "Renewal run %s: %d subscriptions due (dry_run=%s)",
            summary.run_id[:8] if summary.run_id else "-",
            len(due),
            dry_run,
        )

        skip_counts: Counter[str] = Counter()
        for subscription in due:
            try:
                result = await self._renew_one(subscription, summary.run_id, dry_run)
            except Exception as e:
                logger.exception("Unexpected error renewing subscription %s", subscription.id)
                result = _result_for(subscription, "error")
                result.error = str(e) or type(e).__name__
                await self._store.audit(
                    "renewal_error",
                    run_id=summary.run_id,
                    subscription_id=subscription.id,
                    details={"error": result.error},
                )

            summary.results.append(result)
            if result.outcome == "skipped":
                summary.total_skipped += 1
                skip_counts[result.error_code or "unknown"] += 1
                continue

            summary.total_processed += 1
            if result.success:
                summary.total_succeeded += 1
            else:
                summary.total_failed += 1

        summary.skip_breakdown = dict(skip_counts)

        if not dry_run:
            await self._finish_run(summary)

        logger.info(
            "Renewal run %s summary: due=%d, succeeded=%d, failed=%d, skipped=%d (%s)",
            summary.run_id[:8] if summary.run_id else "dry-run",
            summary.total_due,
            summary.total_succeeded,
            summary.total_failed,
            summary.total_skipped,
            ", ".join(f"{k}={v}" for k, v in skip_counts.items()) or "none",
        )
        return summary

    async def expire_canceled_subscriptions(self) -> SweepResult:
        """Expire canceled subscriptions whose paid period has run out. Never charges."""
        now = self._store.now()
        sweep = SweepResult()

        for subscription in await self._store.lapsed_canceled_subscriptions(now):
            try:
                await self._store.update_subscription(subscription.id, status=SubscriptionStatus.EXPIRED)
            except SQLAlchemyError:
                logger.exception("Failed to expire canceled subscription %s", subscription.id)
                continue

            sweep.expired += 1
            sweep.subscription_ids.append(subscription.id)
            await self._store.audit(
                "subscription_expired",
                subscription_id=subscription.id,
                details={"from": subscription.status.value, "reason": "canceled_period_ended"},
            )
            await self._on_transition(subscription, SubscriptionStatus.EXPIRED)

        logger.info("Expired %d canceled subscriptions", sweep.expired)
        return sweep

    # ── Per-subscription processing ──────────────────────────────────────

    async def _renew_one(
        self,
        subscription: SubscriptionRecord,
        run_id: Optional[str],
        dry_run: bool,
    ) -> RenewalResult:
        check = check_renewal_eligibility(
            subscription.card_token,
            subscription.cof_txn_id,
            subscription.plan_type,
            subscription.interval,
        )
        if not check.eligible:
            result = _result_for(subscription, "skipped")
            result.error = check.message
            result.error_code = check.skip_reason.value if check.skip_reason else None
            logger.warning("Skipping subscription %s: %s", subscription.id, check.message)
            if not dry_run:
                await self._store.audit(
                    "renewal_skipped",
                    run_id=run_id,
                    subscription_id=subscription.id,
                    details={"reason": result.error_code, "message": check.message},
                )
            return result

        plan = check.plan
        if dry_run:
            result = _result_for(subscription, "dry_run")
            result.success = True
            result.amount_cents = plan.amount_cents
            result.error = "DRY_RUN - not charged"
            return result

        order = generate_order_number(OrderTag.RECURRING, now=self._store.now())
        result = _result_for(subscription, "failed")
        result.order = order
        result.amount_cents = plan.amount_cents

        try:
            await self._store.create_transaction(
                order=order,
                transaction_type=TransactionType.AUTHORIZATION.value,
                amount_cents=plan.amount_cents,
                currency=self._currency,
                context=PaymentContext.MEMBERSHIP.value,
                member_id=subscription.member_id,
                subscription_id=subscription.id,
                is_mit=True,
                description=_description(plan),
                plan_type=subscription.plan_type,
                interval=subscription.interval,
            )
        except SQLAlchemyError as e:
            # Nothing was charged; the subscription is retried next run.
            logger.error("Failed to create transaction for subscription %s: %s", subscription.id, e)
            result.outcome = "error"
            result.error = "Failed to create transaction record"
            return result

        charge = await self._operations.charge_stored_token(
            order=order,
            amount_cents=plan.amount_cents,
            token=subscription.card_token,
            cof_txn_id=subscription.cof_txn_id,
            description=_description(plan),
        )
        result.response_code = charge.response_code
        await self._record_charge(charge)

        if charge.success:
            await self._handle_success(subscription, charge, run_id, result)
        else:
            await self._handle_failure(subscription, charge, run_id, result)
        return result

    async def _record_charge(self, charge: PaymentResult) -> None:
        """Resolve the pending transaction. Best-effort: the charge already happened."""
        try:
            await self._store.resolve_transaction(
                charge.order,
                PaymentStatus.AUTHORIZED if charge.success else PaymentStatus.DENIED,
                response_code=charge.response_code,
                authorization_code=charge.authorization_code,
                card_brand=charge.card_brand,
                last_four=charge.last_four,
                cof_txn_id=charge.cof_txn_id,
                error_code=charge.error_code,
            )
        except SQLAlchemyError:
            logger.exception("Failed to record result for order %s", charge.order)

    async def _handle_success(
        self,
        subscription: SubscriptionRecord,
        charge: PaymentResult,
        run_id: Optional[str],
        result: RenewalResult,
    ) -> None:
        new_end = next_period_end(subscription.end_date, subscription.interval)
        changes = {
            "status": SubscriptionStatus.ACTIVE,
            "end_date": new_end,
            "renewal_failures": 0,
            "last_order": charge.order,
        }
        if charge.cof_txn_id and charge.cof_txn_id != subscription.cof_txn_id:
            changes["cof_txn_id"] = charge.cof_txn_id

        await self._store.update_subscription(subscription.id, **changes)

        result.outcome = "renewed"
        result.success = True
        result.new_status = SubscriptionStatus.ACTIVE.value
        result.new_end_date = new_end

        await self._store.audit(
            "renewal_charged",
            run_id=run_id,
            subscription_id=subscription.id,
            order=charge.order,
            details={
                "response_code": charge.response_code,
                "previous_end_date": subscription.end_date,
                "new_end_date": new_end,
            },
        )
        logger.info(
            "Renewed subscription %s for member %s; new end %s",
            subscription.id,
            subscription.member_id,
            new_end.isoformat(),
        )

        if subscription.status != SubscriptionStatus.ACTIVE:
            await self._on_transition(subscription, SubscriptionStatus.ACTIVE)

    async def _handle_failure(
        self,
        subscription: SubscriptionRecord,
        charge: PaymentResult,
        run_id: Optional[str],
        result: RenewalResult,
    ) -> None:
        failures = subscription.renewal_failures + 1
        if failures >= self._max_failures:
            new_status = SubscriptionStatus.EXPIRED
        else:
            new_status = SubscriptionStatus.PAST_DUE

        await self._store.update_subscription(
            subscription.id,
            status=new_status,
            renewal_failures=failures,
        )

        result.outcome = "failed"
        result.error = charge.error
        result.error_code = charge.error_code
        result.new_status = new_status.value

        await self._store.audit(
            "renewal_failed",
            run_id=run_id,
            subscription_id=subscription.id,
            order=charge.order,
            details={
                "error_code": charge.error_code,
                "failures": failures,
                "status": new_status.value,
            },
        )
        logger.warning(
            "Renewal failed for subscription %s (attempt %d/%d, %s): %s",
            subscription.id,
            failures,
            self._max_failures,
            new_status.value,
            charge.error,
        )

        if new_status != subscription.status:
            await self._on_transition(subscription, new_status)

    async def _finish_run(self, summary: RenewalRunSummary) -> None:
        counts = {
            "due": summary.total_due,
            "processed": summary.total_processed,
            "succeeded": summary.total_succeeded,
            "failed": summary.total_failed,
            "skipped": summary.total_skipped,
        }
        try:
            await self._store.finish_run(summary.run_id, RunStatus.COMPLETED, counts, summary.skip_breakdown)
        except SQLAlchemyError:
            logger.exception("Failed to record summary for renewal run %s", summary.run_id)
        await self._store.audit("run_completed", run_id=summary.run_id, details=counts)


def _result_for(subscription: SubscriptionRecord, outcome: str) -> RenewalResult:
    return RenewalResult(
        subscription_id=subscription.id,
        member_id=subscription.member_id,
        plan_type=subscription.plan_type,
        interval=subscription.interval,
        outcome=outcome,
    )


def _description(plan: MembershipPlan) -> str:
    return f"Renovacion {plan.name}"
