"""
Processor notification (server-to-server callback) handling.

The processor POSTs a signed envelope after each operation and retries until
it gets HTTP 200, so the same notification can arrive more than once. A
notification resolves its ``pending`` transaction exactly once; duplicates,
unknown orders and unverifiable envelopes change nothing.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from redsys_core.models.enums import PaymentStatus
from redsys_core.protocol.codec import decode_parameters
from redsys_core.protocol.parameters import ResponseParameters
from redsys_core.protocol.response_codes import is_success_response
from redsys_core.protocol.signature import verify_signature
from redsys_core.store import BillingStore

logger = logging.getLogger("redsys_core.notifications")


@dataclass
class NotificationOutcome:
    # "updated", "duplicate", "unknown_order", "missing_order",
    # "invalid_signature", "missing_parameters"
    outcome: str
    order: Optional[str] = None
    status: Optional[str] = None
    response_code: Optional[str] = None


async def process_notification(
    store: BillingStore,
    secret_key: str,
    encoded_params: Optional[str],
    signature: Optional[str],
) -> NotificationOutcome:
    """Verify a notification envelope and resolve its pending transaction."""
    if not encoded_params or not signature:
        logger.error("Notification missing Ds_MerchantParameters or Ds_Signature")
        return NotificationOutcome("missing_parameters")

    if not verify_signature(secret_key, encoded_params, signature):
        logger.error("Notification with invalid signature rejected")
        await store.audit("notification_rejected", details={"reason": "invalid_signature"})
        return NotificationOutcome("invalid_signature")

    params = ResponseParameters.from_wire(decode_parameters(encoded_params))
    logger.info(
        "Notification order=%s response=%s amount=%s auth=%s",
        params.order,
        params.response_code,
        params.amount,
        params.authorization_code,
    )
    if not params.order:
        return NotificationOutcome("missing_order")

    txn = await store.get_transaction(params.order)
    if txn is None:
        logger.warning("Notification for unknown order %s", params.order)
        return NotificationOutcome("unknown_order", order=params.order, response_code=params.response_code)

    status = PaymentStatus.AUTHORIZED if is_success_response(params.response_code) else PaymentStatus.DENIED
    updated = await store.resolve_transaction(
        params.order,
        status,
        only_if_pending=True,
        response_code=params.response_code,
        authorization_code=params.authorization_code,
        card_brand=params.card_brand,
        card_country=params.card_country,
        last_four=params.last_four,
        card_token=params.token,
        cof_txn_id=params.cof_txn_id,
    )
    if not updated:
        logger.info("Order %s already processed (status: %s)", params.order, txn.status.value)
        return NotificationOutcome("duplicate", order=params.order, status=txn.status.value)

    await store.audit(
        "notification_received",
        subscription_id=txn.subscription_id,
        order=params.order,
        details={"response_code": params.response_code, "status": status.value},
    )
    if status == PaymentStatus.DENIED:
        logger.warning("Payment denied for order %s: %s", params.order, params.response_code)
    return NotificationOutcome(
        "updated",
        order=params.order,
        status=status.value,
        response_code=params.response_code,
    )
