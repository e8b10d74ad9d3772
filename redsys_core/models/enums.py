"""Enumerations for the payment gateway domain model."""

from enum import Enum


class TransactionType(str, Enum):
    """DS_MERCHANT_TRANSACTIONTYPE values."""

    AUTHORIZATION = "0"
    PREAUTHORIZATION = "1"
    PREAUTH_CONFIRMATION = "2"  # OK = 0900
    REFUND = "3"  # OK = 0900
    VALIDATION = "7"
    VALIDATION_CONFIRMATION = "8"
    PREAUTH_CANCELLATION = "9"  # OK = 0400
    DELETE_REFERENCE = "44"
    PAYMENT_CANCELLATION = "45"  # OK = 0400
    REFUND_CANCELLATION = "46"  # OK = 0400
    AUTH_CONFIRMATION_CANCELLATION = "47"  # OK = 0400


class OrderTag(str, Enum):
    """Operation-class tag stored in the 5th character of an order number."""

    SHOP = "S"
    MEMBERSHIP = "M"
    RECURRING = "R"
    REFUND = "D"
    GENERIC = "X"


class PaymentStatus(str, Enum):
    """Lifecycle states for a payment transaction."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    ERROR = "error"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentContext(str, Enum):
    SHOP = "shop"
    MEMBERSHIP = "membership"


class SubscriptionStatus(str, Enum):
    """Lifecycle states for a recurring subscription."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class PlanType(str, Enum):
    UNDER_25 = "under25"
    OVER_25 = "over25"
    FAMILY = "family"


class RunStatus(str, Enum):
    """Lifecycle states for a renewal run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Categorized reasons for not charging a due subscription."""

    MISSING_TOKEN = "missing_token"
    UNKNOWN_PLAN = "unknown_plan"
