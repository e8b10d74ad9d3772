"""
Processor notification callback.

POST /payments/notification  Signed server-to-server result (form-urlencoded or JSON).

Always answers 200: any other status makes the processor retry the
notification indefinitely.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from redsys_core.api.deps import get_store
from redsys_core.config import settings
from redsys_core.engine.notifications import process_notification
from redsys_core.store import BillingStore

logger = logging.getLogger("redsys_core.api.notifications")

router = APIRouter(prefix="/payments", tags=["notifications"])


async def _read_envelope(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {key: str(value) for key, value in form.items()}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/notification")
async def receive_notification(request: Request, store: BillingStore = Depends(get_store)):
    envelope = await _read_envelope(request)
    try:
        outcome = await process_notification(
            store,
            settings.redsys_secret_key,
            envelope.get("Ds_MerchantParameters"),
            envelope.get("Ds_Signature"),
        )
    except SQLAlchemyError:
        logger.exception("Failed to process notification")
        return {"status": "error", "message": "Internal error"}

    if outcome.outcome in ("invalid_signature", "missing_parameters"):
        return {"status": "error", "message": outcome.outcome}
    return {"status": "ok", "result": outcome.outcome}
