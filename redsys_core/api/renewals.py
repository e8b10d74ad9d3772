"""
Renewal run endpoints.

POST /renewals/run        Cron trigger: charge due subscriptions, then expire lapsed cancellations.
GET  /renewals            List renewal runs with summary stats.
GET  /renewals/{run_id}   Run detail with its audit trail.
"""

import hmac
import json
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select

from redsys_core.api.deps import get_gateway, get_store
from redsys_core.config import settings
from redsys_core.engine.operations import PaymentOperations
from redsys_core.engine.renewals import RecurringBillingEngine, RenewalRunSummary, SweepResult
from redsys_core.models.billing import AuditLog, RenewalRun
from redsys_core.providers.base import PaymentGateway
from redsys_core.store import BillingStore

router = APIRouter(prefix="/renewals", tags=["renewals"])


class RenewalResultResponse(BaseModel):
    subscription_id: str
    member_id: str
    plan: str
    outcome: str
    success: bool
    order: Optional[str] = None
    amount_cents: Optional[int] = None
    response_code: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    new_status: Optional[str] = None
    new_end_date: Optional[datetime] = None


class SweepResponse(BaseModel):
    expired: int
    subscription_ids: list[str]


class RunTriggerResponse(BaseModel):
    run_id: Optional[str]
    dry_run: bool
    processed_at: datetime
    total_due: int
    total_processed: int
    total_succeeded: int
    total_failed: int
    total_skipped: int
    skip_breakdown: dict[str, int]
    results: list[RenewalResultResponse]
    sweep: Optional[SweepResponse] = None


class AuditEntry(BaseModel):
    id: int
    subscription_id: Optional[str]
    order: Optional[str]
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class RunResponse(BaseModel):
    id: str
    status: str
    due_count: int
    processed_count: int
    succeeded_count: int
    failed_count: int
    skipped_count: int
    skip_breakdown: Optional[dict] = None
    started_at: Optional[str]
    completed_at: Optional[str]
    audit_trail: Optional[list[AuditEntry]] = None


def require_cron_secret(
    secret: Optional[str] = Query(None, description="Cron shared secret"),
    authorization: Optional[str] = Header(None),
) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=503, detail="Renewal trigger is not configured")
    supplied = secret
    if authorization and authorization.startswith("Bearer "):
        supplied = authorization[len("Bearer "):]
    if not supplied or not hmac.compare_digest(supplied.encode(), settings.cron_secret.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _load_details(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"raw": raw}


def _summary_to_response(summary: RenewalRunSummary, sweep: Optional[SweepResult]) -> RunTriggerResponse:
    return RunTriggerResponse(
        run_id=summary.run_id,
        dry_run=summary.dry_run,
        processed_at=summary.processed_at,
        total_due=summary.total_due,
        total_processed=summary.total_processed,
        total_succeeded=summary.total_succeeded,
        total_failed=summary.total_failed,
        total_skipped=summary.total_skipped,
        skip_breakdown=summary.skip_breakdown,
        results=[
            RenewalResultResponse(
                subscription_id=r.subscription_id,
                member_id=r.member_id,
                plan=f"{r.plan_type}_{r.interval}",
                outcome=r.outcome,
                success=r.success,
                order=r.order,
                amount_cents=r.amount_cents,
                response_code=r.response_code,
                error=r.error,
                error_code=r.error_code,
                new_status=r.new_status,
                new_end_date=r.new_end_date,
            )
            for r in summary.results
        ],
        sweep=SweepResponse(expired=sweep.expired, subscription_ids=sweep.subscription_ids) if sweep else None,
    )


def _run_to_response(run: RenewalRun, logs: Optional[list[AuditLog]] = None) -> RunResponse:
    trail = None
    if logs is not None:
        trail = [
            AuditEntry(
                id=log.id,
                subscription_id=log.subscription_id,
                order=log.order,
                action=log.action,
                details=_load_details(log.details),
                timestamp=log.timestamp.isoformat() if log.timestamp else None,
            )
            for log in logs
        ]
    return RunResponse(
        id=run.id,
        status=run.status,
        due_count=run.due_count or 0,
        processed_count=run.processed_count or 0,
        succeeded_count=run.succeeded_count or 0,
        failed_count=run.failed_count or 0,
        skipped_count=run.skipped_count or 0,
        skip_breakdown=_load_details(run.skip_breakdown),
        started_at=run.started_at.isoformat() if run.started_at else None,
        completed_at=run.completed_at.isoformat() if run.completed_at else None,
        audit_trail=trail,
    )


@router.post("/run", response_model=RunTriggerResponse)
async def trigger_renewals(
    dry_run: bool = Query(False, description="Report what would be charged without charging"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Batch size override"),
    _: None = Depends(require_cron_secret),
    store: BillingStore = Depends(get_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    """
    Run the recurring billing batch.

    Charges due subscriptions one at a time, then expires canceled
    subscriptions whose period has ended (skipped on dry runs).
    """
    engine = RecurringBillingEngine(store, PaymentOperations(gateway))
    summary = await engine.process_renewals(dry_run=dry_run, limit=limit)
    sweep = None if dry_run else await engine.expire_canceled_subscriptions()
    return _summary_to_response(summary, sweep)


@router.get("", response_model=list[RunResponse])
async def list_runs(store: BillingStore = Depends(get_store)):
    """List renewal runs, most recent first."""
    result = await store.session.execute(select(RenewalRun).order_by(RenewalRun.started_at.desc()))
    return [_run_to_response(r) for r in result.scalars().all()]


@router.get("/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, store: BillingStore = Depends(get_store)):
    """Run detail including every audit entry it produced."""
    run = await store.session.get(RenewalRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
    result = await store.session.execute(
        select(AuditLog).where(AuditLog.run_id == run_id).order_by(AuditLog.id.asc())
    )
    return _run_to_response(run, list(result.scalars().all()))
