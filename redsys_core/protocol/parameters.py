"""
Typed request and response parameters.

``MerchantParameters`` fully describes one outbound request and renders the
DS_MERCHANT_* wire mapping. ``ResponseParameters`` is the typed view of a
decoded Ds_* response; unknown fields are kept in ``raw``.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Optional

from redsys_core.models.enums import TransactionType
from redsys_core.protocol.order_number import is_valid_order_number
from redsys_core.protocol.signature import extract_order

# Tokenization / COF / SCA wire values
IDENTIFIER_REQUIRED = "REQUIRED"
COF_INI_FIRST = "S"
COF_TYPES = {"recurring": "R", "installments": "I", "reauthorization": "H", "resubmission": "E"}
SCA_EXEMPTION_MIT = "MIT"

_WIRE_NAMES = {
    "transaction_type": "DS_MERCHANT_TRANSACTIONTYPE",
    "order": "DS_MERCHANT_ORDER",
    "amount_cents": "DS_MERCHANT_AMOUNT",
    "currency": "DS_MERCHANT_CURRENCY",
    "merchant_code": "DS_MERCHANT_MERCHANTCODE",
    "terminal": "DS_MERCHANT_TERMINAL",
    "merchant_url": "DS_MERCHANT_MERCHANTURL",
    "operation_token": "DS_MERCHANT_IDOPER",
    "identifier": "DS_MERCHANT_IDENTIFIER",
    "cof_ini": "DS_MERCHANT_COF_INI",
    "cof_type": "DS_MERCHANT_COF_TYPE",
    "cof_txn_id": "DS_MERCHANT_COF_TXNID",
    "sca_exemption": "DS_MERCHANT_EXCEP_SCA",
    "direct_payment": "DS_MERCHANT_DIRECTPAYMENT",
    "emv3ds": "DS_MERCHANT_EMV3DS",
    "description": "DS_MERCHANT_PRODUCTDESCRIPTION",
    "cardholder": "DS_MERCHANT_TITULAR",
    "merchant_data": "DS_MERCHANT_MERCHANTDATA",
}


@dataclass
class MerchantParameters:
    """One outbound request. None-valued fields are omitted on the wire."""

    transaction_type: TransactionType
    order: str
    amount_cents: int
    currency: Optional[str] = None
    merchant_code: Optional[str] = None
    terminal: Optional[str] = None
    merchant_url: Optional[str] = None
    operation_token: Optional[str] = None  # InSite idOper
    identifier: Optional[str] = None  # "REQUIRED" or a stored token
    cof_ini: Optional[str] = None
    cof_type: Optional[str] = None
    cof_txn_id: Optional[str] = None
    sca_exemption: Optional[str] = None
    direct_payment: Optional[str] = None
    emv3ds: Optional[str] = None  # JSON string
    description: Optional[str] = None
    cardholder: Optional[str] = None
    merchant_data: Optional[str] = None

    def __post_init__(self):
        self.transaction_type = TransactionType(self.transaction_type)
        if not is_valid_order_number(self.order):
            raise ValueError(f"Invalid order number: {self.order!r}")
        if isinstance(self.amount_cents, bool) or not isinstance(self.amount_cents, int):
            raise ValueError(f"Amount must be an integer count of cents: {self.amount_cents!r}")
        if self.amount_cents < 0:
            raise ValueError(f"Amount must be non-negative: {self.amount_cents}")

    def to_wire(self) -> dict[str, str]:
        wire = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, TransactionType):
                value = value.value
            wire[_WIRE_NAMES[f.name]] = str(value)
        return wire


def _first(params: dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        value = params.get(name)
        if value is not None and value != "":
            return str(value)
    return None


@dataclass
class ResponseParameters:
    """Decoded Ds_* fields returned by the processor."""

    response_code: Optional[str] = None
    order: Optional[str] = None
    amount: Optional[str] = None
    transaction_type: Optional[str] = None
    authorization_code: Optional[str] = None
    card_number: Optional[str] = None  # masked, e.g. "454881******0004"
    card_brand: Optional[str] = None
    card_country: Optional[str] = None
    token: Optional[str] = None
    token_expiry: Optional[str] = None  # YYMM
    cof_txn_id: Optional[str] = None
    error_code: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, params: dict[str, Any]) -> "ResponseParameters":
        return cls(
            response_code=_first(params, "Ds_Response", "DS_RESPONSE"),
            order=extract_order(params),
            amount=_first(params, "Ds_Amount", "DS_AMOUNT"),
            transaction_type=_first(params, "Ds_TransactionType", "DS_TRANSACTIONTYPE"),
            authorization_code=_first(params, "Ds_AuthorisationCode", "DS_AUTHORISATIONCODE"),
            card_number=_first(params, "Ds_CardNumber", "DS_CARDNUMBER"),
            card_brand=_first(params, "Ds_Card_Brand", "DS_CARD_BRAND"),
            card_country=_first(params, "Ds_Card_Country", "DS_CARD_COUNTRY"),
            token=_first(params, "Ds_Merchant_Identifier", "DS_MERCHANT_IDENTIFIER"),
            token_expiry=_first(params, "Ds_ExpiryDate", "DS_EXPIRYDATE"),
            cof_txn_id=_first(params, "Ds_Merchant_Cof_Txnid", "DS_MERCHANT_COF_TXNID"),
            error_code=_first(params, "Ds_ErrorCode", "DS_ERRORCODE"),
            raw=dict(params),
        )

    @property
    def last_four(self) -> Optional[str]:
        if not self.card_number:
            return None
        return self.card_number[-4:]
