"""
Immutable audit trail for payment operations.

Every state change gets an append-only audit log entry with:
  - Run ID (which renewal run triggered it, if any)
  - Subscription ID
  - Order number (the processor correlation key)
  - Action (what happened)
  - Details (response codes, error classifiers, date changes)
  - Timestamp (UTC)

These records are never modified or deleted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from redsys_core.models.billing import AuditLog

logger = logging.getLogger("redsys_core.audit")


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


async def log_event(
    session: AsyncSession,
    action: str,
    run_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
    order: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session.
        action: What happened (e.g. "renewal_charged", "subscription_expired").
        run_id: The renewal run that triggered this event.
        subscription_id: The subscription this event relates to.
        order: The processor order number involved.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created AuditLog record.
    """
    payload = json.dumps(details, default=_json_default) if details else None
    entry = AuditLog(
        run_id=run_id,
        subscription_id=subscription_id,
        order=order,
        action=action,
        details=payload,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | run=%s subscription=%s order=%s action=%s | %s",
        run_id[:8] if run_id else "-",
        subscription_id or "-",
        order or "-",
        action,
        payload[:200] if payload else "",
    )
    return entry
