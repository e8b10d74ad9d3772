"""Exception hierarchy for the RedSys integration."""

from typing import Optional


class RedsysError(Exception):
    """Base exception for all payment gateway errors."""


class TransportError(RedsysError):
    """
    The processor could not be reached or answered with a non-2xx status.

    ``status_code`` is None for network-level failures (timeouts, refused
    connections). Never retried within a single operation.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConfigurationError(RedsysError):
    """Missing or invalid merchant account settings."""


class ProcessorError(TransportError):
    """
    The processor answered 2xx but rejected the request without a signed
    payload (e.g. ``{"errorCode": "SIS0042"}``).
    """

    def __init__(self, message: str, error_code: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message, status_code=status_code, body=body)
        self.error_code = error_code


class BillingError(RedsysError):
    """A billing request that cannot be carried out in the current state."""


class NotFoundError(BillingError):
    """Unknown member, subscription or order."""
