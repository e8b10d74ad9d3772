"""
Payment transaction query and trace endpoints.

GET /transactions                List transactions with filters (status, context, member, subscription).
GET /transactions/{order}/trace  Transaction detail plus its full audit trail.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select

from redsys_core.api.deps import get_store
from redsys_core.models.billing import AuditLog, PaymentTransaction
from redsys_core.store import BillingStore

router = APIRouter(prefix="/transactions", tags=["transactions"])


class TransactionDetail(BaseModel):
    id: str
    order: str
    transaction_type: str
    amount_cents: int
    currency: str
    status: str
    context: str
    is_mit: bool
    description: Optional[str]
    response_code: Optional[str]
    authorization_code: Optional[str]
    card_brand: Optional[str]
    last_four: Optional[str]
    error_code: Optional[str]
    member_id: Optional[str]
    subscription_id: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]


class AuditEntry(BaseModel):
    id: int
    run_id: Optional[str]
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class TransactionTrace(BaseModel):
    transaction: TransactionDetail
    audit_trail: list[AuditEntry]


def _txn_to_detail(t: PaymentTransaction) -> TransactionDetail:
    return TransactionDetail(
        id=t.id,
        order=t.order,
        transaction_type=t.transaction_type,
        amount_cents=t.amount_cents,
        currency=t.currency,
        status=t.status,
        context=t.context,
        is_mit=bool(t.is_mit),
        description=t.description,
        response_code=t.response_code,
        authorization_code=t.authorization_code,
        card_brand=t.card_brand,
        last_four=t.last_four,
        error_code=t.error_code,
        member_id=t.member_id,
        subscription_id=t.subscription_id,
        created_at=t.created_at.isoformat() if t.created_at else None,
        updated_at=t.updated_at.isoformat() if t.updated_at else None,
    )


@router.get("", response_model=list[TransactionDetail])
async def list_transactions(
    status: Optional[str] = Query(None, description="Filter by status"),
    context: Optional[str] = Query(None, description="Filter by context (shop, membership)"),
    member_id: Optional[str] = Query(None, description="Filter by member"),
    subscription_id: Optional[str] = Query(None, description="Filter by subscription"),
    store: BillingStore = Depends(get_store),
):
    """List transactions with optional filters, newest first."""
    stmt = select(PaymentTransaction)

    if status:
        stmt = stmt.where(PaymentTransaction.status == status)
    if context:
        stmt = stmt.where(PaymentTransaction.context == context)
    if member_id:
        stmt = stmt.where(PaymentTransaction.member_id == member_id)
    if subscription_id:
        stmt = stmt.where(PaymentTransaction.subscription_id == subscription_id)

    stmt = stmt.order_by(PaymentTransaction.created_at.desc())
    result = await store.session.execute(stmt)
    return [_txn_to_detail(t) for t in result.scalars().all()]


@router.get("/{order}/trace", response_model=TransactionTrace)
async def get_transaction_trace(order: str, store: BillingStore = Depends(get_store)):
    """
    Full audit trail for an order number.

    Returns the transaction plus every audit entry that references its
    order, ordered chronologically.
    """
    txn = (
        await store.session.execute(select(PaymentTransaction).where(PaymentTransaction.order == order))
    ).scalars().first()
    if not txn:
        raise HTTPException(status_code=404, detail=f"Transaction not found: {order}")

    result = await store.session.execute(
        select(AuditLog).where(AuditLog.order == order).order_by(AuditLog.id.asc())
    )

    audit_trail = []
    for log in result.scalars().all():
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            run_id=log.run_id,
            action=log.action,
            details=details,
            timestamp=log.timestamp.isoformat() if log.timestamp else None,
        ))

    return TransactionTrace(transaction=_txn_to_detail(txn), audit_trail=audit_trail)
