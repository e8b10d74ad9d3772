from redsys_core.models.enums import (
    BillingInterval,
    OrderTag,
    PaymentContext,
    PaymentStatus,
    PlanType,
    RunStatus,
    SkipReason,
    SubscriptionStatus,
    TransactionType,
)
from redsys_core.models.billing import (
    AuditLog,
    Base,
    Member,
    PaymentTransaction,
    RenewalRun,
    Subscription,
)

__all__ = [
    "Base",
    "Member",
    "Subscription",
    "PaymentTransaction",
    "RenewalRun",
    "AuditLog",
    "BillingInterval",
    "OrderTag",
    "PaymentContext",
    "PaymentStatus",
    "PlanType",
    "RunStatus",
    "SkipReason",
    "SubscriptionStatus",
    "TransactionType",
]
