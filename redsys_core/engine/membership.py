"""
Post-transition membership hook.

Mirrors a subscription's new status onto the member record (``is_member``
and ``subscription_status``). Invoked exactly once per status transition,
after the transition has been committed. The hook has its own failure
handling: a failed update is logged and never reverts the transition.
"""

import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from redsys_core.models.enums import SubscriptionStatus
from redsys_core.store import BillingStore, SubscriptionRecord

logger = logging.getLogger("redsys_core.membership")

TransitionHook = Callable[[SubscriptionRecord, SubscriptionStatus], Awaitable[None]]


class MembershipFlagHook:
    """Default transition hook backed by the billing store."""

    def __init__(self, store: BillingStore):
        self._store = store

    async def __call__(
        self,
        subscription: SubscriptionRecord,
        new_status: SubscriptionStatus,
        **member_fields: Any,
    ) -> None:
        # Canceled members keep access until the period runs out.
        is_member = new_status != SubscriptionStatus.EXPIRED
        try:
            await self._store.set_membership(
                subscription.member_id,
                is_member=is_member,
                subscription_status=new_status,
                **member_fields,
            )
        except SQLAlchemyError:
            logger.exception(
                "Failed to sync membership flag for member %s (subscription %s -> %s)",
                subscription.member_id,
                subscription.id,
                new_status.value,
            )
