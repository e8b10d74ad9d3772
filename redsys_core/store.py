"""
Transaction/subscription store.

The only module that writes the database. Rows cross this
boundary as frozen records, never as live ORM objects, so a rolled-back
best-effort write cannot invalidate state held by the caller.

Every write method is one atomic unit: it commits on success and rolls back
and re-raises ``SQLAlchemyError`` on failure. Updates stamp ``updated_at``
from the store clock.
"""

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from redsys_core.audit.logger import log_event
from redsys_core.models.billing import Member, PaymentTransaction, RenewalRun, Subscription
from redsys_core.models.enums import PaymentStatus, RunStatus, SubscriptionStatus

logger = logging.getLogger("redsys_core.store")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SubscriptionRecord:
    id: str
    member_id: str
    plan_type: str
    interval: str
    status: SubscriptionStatus
    end_date: datetime
    cancel_at_period_end: bool
    card_token: Optional[str]
    card_token_expiry: Optional[str]
    cof_txn_id: Optional[str]
    last_order: Optional[str]
    renewal_failures: int

    @classmethod
    def from_row(cls, row: Subscription) -> "SubscriptionRecord":
        return cls(
            id=row.id,
            member_id=row.member_id,
            plan_type=row.plan_type,
            interval=row.interval,
            status=SubscriptionStatus(row.status),
            end_date=as_utc(row.end_date),
            cancel_at_period_end=bool(row.cancel_at_period_end),
            card_token=row.card_token,
            card_token_expiry=row.card_token_expiry,
            cof_txn_id=row.cof_txn_id,
            last_order=row.last_order,
            renewal_failures=row.renewal_failures or 0,
        )


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    order: str
    transaction_type: str
    amount_cents: int
    status: PaymentStatus
    context: str
    is_mit: bool
    response_code: Optional[str]
    member_id: Optional[str]
    subscription_id: Optional[str]
    plan_type: Optional[str]
    interval: Optional[str]
    description: Optional[str]

    @classmethod
    def from_row(cls, row: PaymentTransaction) -> "TransactionRecord":
        return cls(
            id=row.id,
            order=row.order,
            transaction_type=row.transaction_type,
            amount_cents=row.amount_cents,
            status=PaymentStatus(row.status),
            context=row.context,
            is_mit=bool(row.is_mit),
            response_code=row.response_code,
            member_id=row.member_id,
            subscription_id=row.subscription_id,
            plan_type=row.plan_type,
            interval=row.interval,
            description=row.description,
        )


class BillingStore:
    """Store handle injected into the billing services."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self._session = session
        self._clock = clock

    @property
    def session(self) -> AsyncSession:
        return self._session

    def now(self) -> datetime:
        return self._clock()

    @asynccontextmanager
    async def _unit(self) -> AsyncIterator[None]:
        """One atomic write: commit on exit, roll back and re-raise on database errors."""
        try:
            yield
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise

    # ── Subscriptions ────────────────────────────────────────────────────

    async def due_subscriptions(
        self,
        now: datetime,
        limit: int,
        statuses: Iterable[SubscriptionStatus],
    ) -> list[SubscriptionRecord]:
        """Subscriptions due for a charge, oldest due date first."""
        stmt = (
            select(Subscription)
            .where(
                Subscription.status.in_([s.value for s in statuses]),
                Subscription.end_date <= now,
                Subscription.card_token.is_not(None),
                Subscription.cof_txn_id.is_not(None),
            )
            .order_by(Subscription.end_date.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [SubscriptionRecord.from_row(row) for row in result.scalars().all()]

    async def lapsed_canceled_subscriptions(self, now: datetime) -> list[SubscriptionRecord]:
        stmt = (
            select(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.CANCELED.value,
                Subscription.end_date <= now,
            )
            .order_by(Subscription.end_date.asc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [SubscriptionRecord.from_row(row) for row in result.scalars().all()]

    async def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        row = await self._session.get(Subscription, subscription_id, populate_existing=True)
        return SubscriptionRecord.from_row(row) if row else None

    async def current_subscription(self, member_id: str) -> Optional[SubscriptionRecord]:
        """The member's most recent subscription that has not expired."""
        stmt = (
            select(Subscription)
            .where(
                Subscription.member_id == member_id,
                Subscription.status != SubscriptionStatus.EXPIRED.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return SubscriptionRecord.from_row(row) if row else None

    async def create_subscription(
        self,
        member_id: str,
        plan_type: str,
        interval: str,
        start_date: datetime,
        end_date: datetime,
        card_token: Optional[str],
        card_token_expiry: Optional[str],
        cof_txn_id: Optional[str],
        last_order: str,
    ) -> SubscriptionRecord:
        async with self._unit():
            row = Subscription(
                member_id=member_id,
                plan_type=plan_type,
                interval=interval,
                status=SubscriptionStatus.ACTIVE.value,
                start_date=start_date,
                end_date=end_date,
                card_token=card_token,
                card_token_expiry=card_token_expiry,
                cof_txn_id=cof_txn_id,
                last_order=last_order,
                renewal_failures=0,
                created_at=self.now(),
                updated_at=self.now(),
            )
            self._session.add(row)
            await self._session.flush()
            record = SubscriptionRecord.from_row(row)
        return record

    async def update_subscription(self, subscription_id: str, **changes: Any) -> None:
        if isinstance(changes.get("status"), SubscriptionStatus):
            changes["status"] = changes["status"].value
        async with self._unit():
            await self._session.execute(
                update(Subscription)
                .where(Subscription.id == subscription_id)
                .values(**changes, updated_at=self.now())
            )

    # ── Members ──────────────────────────────────────────────────────────

    async def member_exists(self, member_id: str) -> bool:
        return await self._session.get(Member, member_id) is not None

    async def set_membership(
        self,
        member_id: str,
        is_member: bool,
        subscription_status: SubscriptionStatus,
        **extra: Any,
    ) -> None:
        """Update the member's denormalized membership flag and status."""
        async with self._unit():
            await self._session.execute(
                update(Member)
                .where(Member.id == member_id)
                .values(
                    is_member=is_member,
                    subscription_status=subscription_status.value,
                    updated_at=self.now(),
                    **extra,
                )
            )

    # ── Payment transactions ─────────────────────────────────────────────

    async def create_transaction(
        self,
        order: str,
        transaction_type: str,
        amount_cents: int,
        currency: str,
        context: str,
        member_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        is_mit: bool = False,
        description: Optional[str] = None,
        plan_type: Optional[str] = None,
        interval: Optional[str] = None,
    ) -> TransactionRecord:
        """Insert a ``pending`` transaction; committed before any network call."""
        async with self._unit():
            row = PaymentTransaction(
                order=order,
                transaction_type=transaction_type,
                amount_cents=amount_cents,
                currency=currency,
                status=PaymentStatus.PENDING.value,
                context=context,
                member_id=member_id,
                subscription_id=subscription_id,
                is_mit=is_mit,
                description=description,
                plan_type=plan_type,
                interval=interval,
                created_at=self.now(),
                updated_at=self.now(),
            )
            self._session.add(row)
            await self._session.flush()
            record = TransactionRecord.from_row(row)
        return record

    async def get_transaction(self, order: str) -> Optional[TransactionRecord]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.order == order)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(stmt)).scalars().first()
        return TransactionRecord.from_row(row) if row else None

    async def resolve_transaction(
        self,
        order: str,
        status: PaymentStatus,
        only_if_pending: bool = False,
        **fields: Any,
    ) -> bool:
        """
        Set the outcome of a transaction.

        With ``only_if_pending`` the update is conditional on the row still
        being ``pending``; returns False when nothing was updated.
        """
        stmt = update(PaymentTransaction).where(PaymentTransaction.order == order)
        if only_if_pending:
            stmt = stmt.where(PaymentTransaction.status == PaymentStatus.PENDING.value)
        async with self._unit():
            result = await self._session.execute(
                stmt.values(status=status.value, updated_at=self.now(), **fields)
            )
        return result.rowcount > 0

    # ── Renewal runs ─────────────────────────────────────────────────────

    async def start_run(self) -> str:
        async with self._unit():
            run = RenewalRun(status=RunStatus.RUNNING.value, started_at=self.now())
            self._session.add(run)
            await self._session.flush()
            run_id = run.id
        return run_id

    async def finish_run(
        self,
        run_id: str,
        status: RunStatus,
        counts: dict[str, int],
        skip_breakdown: dict[str, int],
    ) -> None:
        async with self._unit():
            await self._session.execute(
                update(RenewalRun)
                .where(RenewalRun.id == run_id)
                .values(
                    status=status.value,
                    due_count=counts.get("due", 0),
                    processed_count=counts.get("processed", 0),
                    succeeded_count=counts.get("succeeded", 0),
                    failed_count=counts.get("failed", 0),
                    skipped_count=counts.get("skipped", 0),
                    skip_breakdown=json.dumps(skip_breakdown) if skip_breakdown else None,
                    completed_at=self.now(),
                )
            )

    # ── Audit ────────────────────────────────────────────────────────────

    async def audit(
        self,
        action: str,
        run_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
        order: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Append an audit entry. Best-effort: failures are logged, never raised."""
        try:
            async with self._unit():
                await log_event(
                    self._session,
                    action,
                    run_id=run_id,
                    subscription_id=subscription_id,
                    order=order,
                    details=details,
                )
        except SQLAlchemyError:
            logger.exception("Failed to persist audit entry %s (order=%s)", action, order or "-")
