"""
Mock RedSys processor for tests and local development.

Plugs into ``httpx.AsyncClient`` as a transport and behaves like the REST
endpoints:
  - Verifies the request signature (``SIS0042`` on mismatch)
  - Signs every response with the merchant key
  - Returns a token, expiry and COF transaction id when tokenization is requested
  - Configurable latency and denial rate, or a scripted queue of outcomes

Scripted outcomes take precedence over the random denial rate.
"""

import asyncio
import json
import random
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

import httpx

from redsys_core.config import SIGNATURE_VERSION
from redsys_core.models.enums import TransactionType
from redsys_core.protocol.codec import decode_parameters, encode_parameters
from redsys_core.protocol.parameters import IDENTIFIER_REQUIRED
from redsys_core.protocol.signature import create_signature, verify_signature

DENIAL_CODE = "0190"  # generic issuer denial
MASKED_CARD = "454881******0004"

_SUCCESS_CODES = {
    TransactionType.AUTHORIZATION.value: "0000",
    TransactionType.PREAUTHORIZATION.value: "0000",
    TransactionType.VALIDATION.value: "0000",
    TransactionType.PREAUTH_CONFIRMATION.value: "0900",
    TransactionType.VALIDATION_CONFIRMATION.value: "0900",
    TransactionType.REFUND.value: "0900",
    TransactionType.DELETE_REFERENCE.value: "0900",
    TransactionType.PREAUTH_CANCELLATION.value: "0400",
    TransactionType.PAYMENT_CANCELLATION.value: "0400",
    TransactionType.REFUND_CANCELLATION.value: "0400",
    TransactionType.AUTH_CONFIRMATION_CANCELLATION.value: "0400",
}


class MockRedsysGateway:
    """
    In-process fake of the RedSys REST endpoints.

    Usage:
        gateway = MockRedsysGateway(secret_key)
        http = httpx.AsyncClient(transport=gateway.transport)
        client = RedsysClient(secret_key, "999008881", endpoints, http_client=http)
    """

    def __init__(
        self,
        secret_key: str,
        failure_rate: float = 0.0,
        latency_ms: int = 0,
        rotate_cof_txn_id: bool = False,
    ):
        self._secret_key = secret_key
        self._failure_rate = failure_rate
        self._latency_ms = latency_ms
        self._rotate_cof_txn_id = rotate_cof_txn_id
        self._script: deque[tuple[str, Any]] = deque()
        self.requests: list[dict[str, Any]] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # ── Scripting ────────────────────────────────────────────────────────

    def queue_response(self, code: str) -> None:
        """Answer the next request with this Ds_Response code."""
        self._script.append(("code", code))

    def queue_http_error(self, status_code: int, body: str = "Service Unavailable") -> None:
        self._script.append(("http", (status_code, body)))

    def queue_timeout(self) -> None:
        self._script.append(("timeout", None))

    def queue_bad_signature(self, code: str = "0000") -> None:
        """Answer with a valid payload carrying a forged signature."""
        self._script.append(("forged", code))

    def queue_missing_order(self, code: str = "0000") -> None:
        """Answer with a payload that carries no order number."""
        self._script.append(("no_order", code))

    # ── Request handling ─────────────────────────────────────────────────

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        body = json.loads(request.content or b"{}")
        encoded = body.get("Ds_MerchantParameters", "")
        try:
            params = decode_parameters(encoded)
        except ValueError:
            return httpx.Response(200, json={"errorCode": "SIS0041"})

        operation = "pre_authenticate" if request.url.path.endswith("iniciaPeticionREST") else "execute"
        self.requests.append({"operation": operation, **params})

        if not verify_signature(self._secret_key, encoded, body.get("Ds_Signature", "")):
            return httpx.Response(200, json={"errorCode": "SIS0042"})

        kind, value = self._script.popleft() if self._script else ("auto", None)

        if kind == "timeout":
            raise httpx.ReadTimeout("Mock processor timed out", request=request)
        if kind == "http":
            status_code, text = value
            return httpx.Response(status_code, text=text)

        code = value if kind in ("code", "forged", "no_order") else self._auto_code(params)
        response_params = self._response_params(params, code, operation)
        if kind == "no_order":
            response_params.pop("Ds_Order")

        response_encoded = encode_parameters(response_params)
        if kind == "forged":
            signature = create_signature(self._secret_key, response_encoded, "0000XFORGED0")
        else:
            signature = create_signature(self._secret_key, response_encoded, params["DS_MERCHANT_ORDER"])

        return httpx.Response(
            200,
            json={
                "Ds_SignatureVersion": SIGNATURE_VERSION,
                "Ds_MerchantParameters": response_encoded,
                "Ds_Signature": signature,
            },
        )

    def _auto_code(self, params: dict[str, Any]) -> str:
        if random.random() < self._failure_rate:
            return DENIAL_CODE
        return _SUCCESS_CODES.get(params.get("DS_MERCHANT_TRANSACTIONTYPE", "0"), "0000")

    def _response_params(self, params: dict[str, Any], code: str, operation: str) -> dict[str, str]:
        now = datetime.now(timezone.utc)
        response = {
            "Ds_Date": now.strftime("%d/%m/%Y"),
            "Ds_Hour": now.strftime("%H:%M"),
            "Ds_Amount": params.get("DS_MERCHANT_AMOUNT", "0"),
            "Ds_Currency": params.get("DS_MERCHANT_CURRENCY", ""),
            "Ds_Order": params.get("DS_MERCHANT_ORDER", ""),
            "Ds_MerchantCode": params.get("DS_MERCHANT_MERCHANTCODE", ""),
            "Ds_Terminal": params.get("DS_MERCHANT_TERMINAL", ""),
            "Ds_Response": code,
            "Ds_TransactionType": params.get("DS_MERCHANT_TRANSACTIONTYPE", "0"),
            "Ds_SecurePayment": "0",
        }
        if operation == "pre_authenticate":
            response["Ds_EMV3DS"] = json.dumps({"protocolVersion": "2.2.0", "threeDSInfo": "CardConfiguration"})
            return response

        approved = code.isdigit() and (int(code) <= 99 or int(code) in (400, 900))
        if not approved:
            return response

        response["Ds_AuthorisationCode"] = f"{random.randint(0, 999999):06d}"
        response["Ds_CardNumber"] = MASKED_CARD
        response["Ds_Card_Brand"] = "1"
        response["Ds_Card_Country"] = "724"

        identifier = params.get("DS_MERCHANT_IDENTIFIER")
        if identifier == IDENTIFIER_REQUIRED:
            response["Ds_Merchant_Identifier"] = uuid.uuid4().hex[:40]
            response["Ds_ExpiryDate"] = "3412"
            response["Ds_Merchant_Cof_Txnid"] = self._new_cof_txn_id()
        elif identifier and params.get("DS_MERCHANT_COF_TXNID") and self._rotate_cof_txn_id:
            response["Ds_Merchant_Cof_Txnid"] = self._new_cof_txn_id()
        return response

    @staticmethod
    def _new_cof_txn_id() -> str:
        return f"{random.randint(0, 10**15 - 1):015d}"
