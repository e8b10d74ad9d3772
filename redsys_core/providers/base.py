"""
Payment gateway interface and wire envelope types.

Every request to the processor and every response from it travels as a
``SignedEnvelope``: the base64 merchant parameters plus their signature.
Payment operations depend only on ``PaymentGateway``; ``RedsysClient`` is the
production implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from redsys_core.protocol.parameters import MerchantParameters, ResponseParameters


@dataclass
class SignedEnvelope:
    """``{Ds_SignatureVersion, Ds_MerchantParameters, Ds_Signature}``."""

    signature_version: str
    encoded_parameters: str
    signature: str

    def to_json(self) -> dict[str, str]:
        return {
            "Ds_SignatureVersion": self.signature_version,
            "Ds_MerchantParameters": self.encoded_parameters,
            "Ds_Signature": self.signature,
        }

    @classmethod
    def from_json(cls, body: Any) -> "SignedEnvelope":
        """
        Raises:
            ValueError: If any of the three fields is missing.
        """
        if not isinstance(body, dict):
            raise ValueError("Envelope must be a JSON object")
        try:
            return cls(
                signature_version=str(body["Ds_SignatureVersion"]),
                encoded_parameters=str(body["Ds_MerchantParameters"]),
                signature=str(body["Ds_Signature"]),
            )
        except KeyError as e:
            raise ValueError(f"Envelope missing field {e}") from e


@dataclass
class RestResult:
    """
    Outcome of one REST round-trip.

    Callers must check ``verified`` before trusting ``params.response_code``.
    """

    params: ResponseParameters
    raw: Optional[SignedEnvelope]
    verified: bool


class PaymentGateway(ABC):
    """Abstract base class for the card processor connection."""

    @abstractmethod
    def build_signed_request(self, params: MerchantParameters) -> SignedEnvelope:
        """Merge account defaults into ``params``, encode and sign them."""
        ...

    @abstractmethod
    async def execute(self, envelope: SignedEnvelope) -> RestResult:
        """
        Execute an operation (authorization, refund, token deletion...).

        Raises:
            TransportError: On network failure or non-2xx status.
        """
        ...

    @abstractmethod
    async def pre_authenticate(self, envelope: SignedEnvelope) -> RestResult:
        """
        Start an operation that needs EMV3DS or DCC pre-authentication.

        Raises:
            TransportError: On network failure or non-2xx status.
        """
        ...
