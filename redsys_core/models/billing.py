"""SQLAlchemy models for payment transactions and recurring subscriptions."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class Member(Base):
    """
    A club member.

    ``is_member`` and ``subscription_status`` are denormalized views of the
    member's subscription, kept in sync by the membership hook after every
    subscription state transition.
    """

    __tablename__ = "members"

    id = Column(String(50), primary_key=True)
    name = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True)
    is_member = Column(Boolean, nullable=False, default=False)
    subscription_status = Column(String(20), nullable=True)
    subscription_plan = Column(String(30), nullable=True)  # e.g. "over25_monthly"
    last_four = Column(String(4), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class Subscription(Base):
    """
    A recurring membership agreement backed by a stored card token.

    Created on the first successful tokenized authorization. ``end_date`` is
    the next due date; it advances one billing interval per successful
    merchant-initiated renewal.
    """

    __tablename__ = "subscriptions"

    id = Column(String(12), primary_key=True, default=_new_id)
    member_id = Column(String(50), ForeignKey("members.id"), nullable=False, index=True)
    plan_type = Column(String(20), nullable=False)
    interval = Column(String(20), nullable=False)  # "monthly" | "annual"
    status = Column(String(20), nullable=False, default="active", index=True)
    start_date = Column(DateTime(timezone=True), default=_utcnow)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    # Credential-on-file
    card_token = Column(String(100), nullable=True)
    card_token_expiry = Column(String(4), nullable=True)  # YYMM
    cof_txn_id = Column(String(100), nullable=True)
    last_order = Column(String(12), nullable=True)
    renewal_failures = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    transactions = relationship("PaymentTransaction", back_populates="subscription", lazy="raise")


class PaymentTransaction(Base):
    """
    Audit record of one processor call.

    Created as ``pending`` before the network call and resolved exactly once
    (``authorized`` or ``denied``) after the response is verified. The order
    number is unique per processor account.
    """

    __tablename__ = "payment_transactions"

    id = Column(String(12), primary_key=True, default=_new_id)
    order = Column(String(12), nullable=False, unique=True, index=True)
    transaction_type = Column(String(2), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="978")
    status = Column(String(20), nullable=False, default="pending", index=True)
    context = Column(String(20), nullable=False, default="membership")
    is_mit = Column(Boolean, nullable=False, default=False)
    description = Column(String(200), nullable=True)

    # Processor result
    response_code = Column(String(4), nullable=True)
    authorization_code = Column(String(20), nullable=True)
    card_brand = Column(String(10), nullable=True)
    card_country = Column(String(3), nullable=True)
    last_four = Column(String(4), nullable=True)
    card_token = Column(String(100), nullable=True)
    cof_txn_id = Column(String(100), nullable=True)
    error_code = Column(String(20), nullable=True)

    member_id = Column(String(50), ForeignKey("members.id"), nullable=True, index=True)
    subscription_id = Column(String(12), ForeignKey("subscriptions.id"), nullable=True, index=True)
    order_ref = Column(String(50), nullable=True)  # shop order linkage
    plan_type = Column(String(20), nullable=True)
    interval = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    subscription = relationship("Subscription", back_populates="transactions")


class RenewalRun(Base):
    """One execution of the recurring billing batch (dry runs are not persisted)."""

    __tablename__ = "renewal_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String(20), nullable=False, default="running")
    due_count = Column(Integer, default=0)
    processed_count = Column(Integer, default=0)
    succeeded_count = Column(Integer, default=0)
    failed_count = Column(Integer, default=0)
    skipped_count = Column(Integer, default=0)
    skip_breakdown = Column(Text, nullable=True)  # JSON: {"unknown_plan": 1, ...}
    started_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every subscription transition, charge attempt and notification gets an
    entry. These are append-only and never modified.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), ForeignKey("renewal_runs.id"), nullable=True, index=True)
    subscription_id = Column(String(12), nullable=True, index=True)
    order = Column(String(12), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
