"""
Customer-initiated membership payments and subscription management.

The first membership payment is captured by the InSite card form, which
yields a one-shot operation token. Authorizing it with tokenization stores
the card at the processor and returns the token + COF transaction id that
the recurring billing engine later charges without the cardholder.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from redsys_core.config import settings
from redsys_core.engine.membership import MembershipFlagHook, TransitionHook
from redsys_core.engine.operations import PaymentOperations, PaymentResult
from redsys_core.engine.plans import MembershipPlan, get_membership_plan, next_period_end
from redsys_core.exceptions import BillingError, NotFoundError
from redsys_core.models.enums import (
    OrderTag,
    PaymentContext,
    PaymentStatus,
    SubscriptionStatus,
    TransactionType,
)
from redsys_core.protocol.order_number import generate_order_number
from redsys_core.store import BillingStore, SubscriptionRecord

logger = logging.getLogger("redsys_core.checkout")


@dataclass
class PreparedPayment:
    """What the card form needs to start a membership payment."""

    order: str
    amount_cents: int
    currency: str
    plan: MembershipPlan


@dataclass
class CheckoutResult:
    payment: PaymentResult
    subscription: Optional[SubscriptionRecord] = None


class MembershipCheckout:
    def __init__(
        self,
        store: BillingStore,
        operations: PaymentOperations,
        on_transition: Optional[TransitionHook] = None,
        currency: str = settings.redsys_currency,
    ):
        self._store = store
        self._operations = operations
        self._on_transition = on_transition or MembershipFlagHook(store)
        self._currency = currency

    async def prepare_membership_payment(self, member_id: str, plan_type: str, interval: str) -> PreparedPayment:
        """
        Mint a membership order and its pending transaction.

        Raises:
            NotFoundError: Unknown member.
            BillingError: Unknown plan.
        """
        if not await self._store.member_exists(member_id):
            raise NotFoundError(f"Member not found: {member_id}")
        plan = get_membership_plan(plan_type, interval)
        if plan is None:
            raise BillingError(f"Unknown plan: {plan_type}_{interval}")

        order = generate_order_number(OrderTag.MEMBERSHIP, now=self._store.now())
        await self._store.create_transaction(
            order=order,
            transaction_type=TransactionType.AUTHORIZATION.value,
            amount_cents=plan.amount_cents,
            currency=self._currency,
            context=PaymentContext.MEMBERSHIP.value,
            member_id=member_id,
            description=f"Membresia {plan.name}",
            plan_type=plan.plan_type.value,
            interval=plan.interval.value,
        )
        logger.info("Prepared membership order %s for member %s (%s)", order, member_id, plan.key)
        return PreparedPayment(order=order, amount_cents=plan.amount_cents, currency=self._currency, plan=plan)

    async def complete_membership_payment(self, order: str, operation_token: str) -> CheckoutResult:
        """
        Authorize a prepared membership order with tokenization.

        On approval the member's subscription is created (or renewed in place
        if one is still open) with a period ending one interval from now.

        Raises:
            NotFoundError: Unknown order.
            BillingError: The order is not pending or not a membership payment.
        """
        txn = await self._store.get_transaction(order)
        if txn is None:
            raise NotFoundError(f"Transaction not found: {order}")
        if txn.status != PaymentStatus.PENDING:
            raise BillingError(f"Transaction {order} is already {txn.status.value}")
        if not txn.member_id or not txn.plan_type or not txn.interval:
            raise BillingError(f"Transaction {order} is not a membership payment")

        payment = await self._operations.authorize_with_operation_token(
            operation_token,
            order,
            txn.amount_cents,
            description=txn.description,
            tokenize=True,
        )
        await self._store.resolve_transaction(
            order,
            PaymentStatus.AUTHORIZED if payment.success else PaymentStatus.DENIED,
            response_code=payment.response_code,
            authorization_code=payment.authorization_code,
            card_brand=payment.card_brand,
            card_country=payment.card_country,
            last_four=payment.last_four,
            card_token=payment.token,
            cof_txn_id=payment.cof_txn_id,
            error_code=payment.error_code,
        )
        if not payment.success:
            logger.warning("Membership payment %s failed: %s", order, payment.error)
            return CheckoutResult(payment=payment)

        if not payment.token or not payment.cof_txn_id:
            logger.warning("Membership payment %s approved without stored credentials", order)

        now = self._store.now()
        end_date = next_period_end(now, txn.interval)
        current = await self._store.current_subscription(txn.member_id)
        if current is None:
            subscription = await self._store.create_subscription(
                member_id=txn.member_id,
                plan_type=txn.plan_type,
                interval=txn.interval,
                start_date=now,
                end_date=end_date,
                card_token=payment.token,
                card_token_expiry=payment.token_expiry,
                cof_txn_id=payment.cof_txn_id,
                last_order=order,
            )
        else:
            await self._store.update_subscription(
                current.id,
                plan_type=txn.plan_type,
                interval=txn.interval,
                status=SubscriptionStatus.ACTIVE,
                end_date=end_date,
                cancel_at_period_end=False,
                canceled_at=None,
                card_token=payment.token,
                card_token_expiry=payment.token_expiry,
                cof_txn_id=payment.cof_txn_id,
                last_order=order,
                renewal_failures=0,
            )
            subscription = await self._store.get_subscription(current.id)

        await self._store.audit(
            "membership_started",
            subscription_id=subscription.id,
            order=order,
            details={"plan": f"{txn.plan_type}_{txn.interval}", "end_date": end_date},
        )
        await self._on_transition(
            subscription,
            SubscriptionStatus.ACTIVE,
            subscription_plan=f"{txn.plan_type}_{txn.interval}",
            last_four=payment.last_four,
        )
        logger.info("Membership active for member %s until %s", txn.member_id, end_date.isoformat())
        return CheckoutResult(payment=payment, subscription=subscription)

    async def cancel_subscription(self, member_id: str) -> SubscriptionRecord:
        """
        Cancel at period end. The member keeps access until ``end_date``;
        the cancellation sweep expires the subscription afterwards.
        """
        subscription = await self._store.current_subscription(member_id)
        if subscription is None:
            raise NotFoundError(f"No open subscription for member {member_id}")
        if subscription.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE):
            raise BillingError(f"Subscription {subscription.id} is already {subscription.status.value}")

        await self._store.update_subscription(
            subscription.id,
            status=SubscriptionStatus.CANCELED,
            cancel_at_period_end=True,
            canceled_at=self._store.now(),
        )
        await self._store.audit(
            "subscription_canceled",
            subscription_id=subscription.id,
            details={"from": subscription.status.value, "access_until": subscription.end_date},
        )
        await self._on_transition(subscription, SubscriptionStatus.CANCELED)
        return await self._store.get_subscription(subscription.id)

    async def refund_payment(self, order: str, amount_cents: Optional[int] = None) -> PaymentResult:
        """
        Refund an authorized payment under its original order number.

        ``amount_cents`` defaults to the full amount.
        """
        txn = await self._store.get_transaction(order)
        if txn is None:
            raise NotFoundError(f"Transaction not found: {order}")
        if txn.status != PaymentStatus.AUTHORIZED:
            raise BillingError(f"Only authorized payments can be refunded ({order} is {txn.status.value})")
        amount = txn.amount_cents if amount_cents is None else amount_cents
        if amount <= 0 or amount > txn.amount_cents:
            raise BillingError(f"Refund amount {amount} outside 1..{txn.amount_cents}")

        result = await self._operations.refund(order, amount)
        if result.success:
            await self._store.resolve_transaction(order, PaymentStatus.REFUNDED, response_code=result.response_code)
        await self._store.audit(
            "refund_succeeded" if result.success else "refund_failed",
            subscription_id=txn.subscription_id,
            order=order,
            details={"amount_cents": amount, "response_code": result.response_code, "error_code": result.error_code},
        )
        return result

    async def remove_stored_card(self, subscription_id: str) -> PaymentResult:
        """Delete the stored card at the processor and forget it locally."""
        subscription = await self._store.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription not found: {subscription_id}")
        if not subscription.card_token:
            raise BillingError(f"Subscription {subscription_id} has no stored card")

        order = generate_order_number(OrderTag.GENERIC, now=self._store.now())
        await self._store.create_transaction(
            order=order,
            transaction_type=TransactionType.DELETE_REFERENCE.value,
            amount_cents=0,
            currency=self._currency,
            context=PaymentContext.MEMBERSHIP.value,
            member_id=subscription.member_id,
            subscription_id=subscription.id,
        )
        result = await self._operations.delete_token(order, subscription.card_token)
        await self._store.resolve_transaction(
            order,
            PaymentStatus.AUTHORIZED if result.success else PaymentStatus.DENIED,
            response_code=result.response_code,
            error_code=result.error_code,
        )
        if result.success:
            await self._store.update_subscription(
                subscription.id,
                card_token=None,
                card_token_expiry=None,
                cof_txn_id=None,
            )
        await self._store.audit(
            "card_removed" if result.success else "card_removal_failed",
            subscription_id=subscription.id,
            order=order,
            details={"response_code": result.response_code, "error_code": result.error_code},
        )
        return result
