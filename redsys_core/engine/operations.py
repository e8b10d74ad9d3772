"""
Payment operations over the signed REST client.

Each operation builds a transaction-type-specific request, executes it and
interprets the verified result:

  authorize_with_operation_token  type 0, optional tokenization (COF first use)
  charge_stored_token             type 0, stored token + COF id, SCA-exempt MIT
  refund                          type 3 on the ORIGINAL order, OK = 0900
  delete_token                    type 44, OK = 0900

Operations never raise for processor problems. An unverified response is
always a failure classified ``SIG_FAIL``, whatever its response code; a
transport failure is ``NETWORK`` (or the processor's SIS error code); a
denial carries the raw response code as its classifier.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from redsys_core.exceptions import ProcessorError, TransportError
from redsys_core.models.enums import TransactionType
from redsys_core.protocol.parameters import (
    COF_INI_FIRST,
    COF_TYPES,
    IDENTIFIER_REQUIRED,
    SCA_EXEMPTION_MIT,
    MerchantParameters,
    ResponseParameters,
)
from redsys_core.protocol.response_codes import is_authorization_success, is_refund_success
from redsys_core.providers.base import PaymentGateway

logger = logging.getLogger("redsys_core.operations")

SIG_FAIL = "SIG_FAIL"
NETWORK = "NETWORK"


@dataclass
class PaymentResult:
    """Interpreted outcome of one payment operation."""

    success: bool
    order: str
    response_code: Optional[str] = None
    authorization_code: Optional[str] = None
    card_brand: Optional[str] = None
    card_country: Optional[str] = None
    last_four: Optional[str] = None
    token: Optional[str] = None
    token_expiry: Optional[str] = None
    cof_txn_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def signature_failed(self) -> bool:
        return self.error_code == SIG_FAIL


class PaymentOperations:
    """Business transaction types over a ``PaymentGateway``."""

    def __init__(self, gateway: PaymentGateway):
        self._gateway = gateway

    async def authorize_with_operation_token(
        self,
        operation_token: str,
        order: str,
        amount_cents: int,
        description: Optional[str] = None,
        tokenize: bool = False,
        cof_type: str = "recurring",
    ) -> PaymentResult:
        """
        Authorize a payment captured by the InSite form (``idOper``).

        With ``tokenize`` the processor is asked to store the card
        (IDENTIFIER=REQUIRED, first COF use) and return a reusable token.
        """
        params = MerchantParameters(
            transaction_type=TransactionType.AUTHORIZATION,
            order=order,
            amount_cents=amount_cents,
            operation_token=operation_token,
            description=description,
        )
        if tokenize:
            params.identifier = IDENTIFIER_REQUIRED
            params.cof_ini = COF_INI_FIRST
            params.cof_type = COF_TYPES.get(cof_type, cof_type)

        def interpret(resp: ResponseParameters) -> PaymentResult:
            if not is_authorization_success(resp.response_code):
                return _denied(order, resp, "Payment denied")
            return PaymentResult(
                success=True,
                order=order,
                response_code=resp.response_code,
                authorization_code=resp.authorization_code,
                card_brand=resp.card_brand,
                card_country=resp.card_country,
                last_four=resp.last_four,
                token=resp.token if tokenize else None,
                token_expiry=resp.token_expiry if tokenize else None,
                cof_txn_id=resp.cof_txn_id if tokenize else None,
            )

        return await self._run("authorize", params, interpret)

    async def charge_stored_token(
        self,
        order: str,
        amount_cents: int,
        token: str,
        cof_txn_id: str,
        description: Optional[str] = None,
    ) -> PaymentResult:
        """
        Merchant-initiated charge of a stored card, no cardholder present.

        The COF transaction id is replaced only if the processor returns a new one.
        """
        params = MerchantParameters(
            transaction_type=TransactionType.AUTHORIZATION,
            order=order,
            amount_cents=amount_cents,
            identifier=token,
            cof_txn_id=cof_txn_id,
            sca_exemption=SCA_EXEMPTION_MIT,
            direct_payment="true",
            description=description,
        )

        def interpret(resp: ResponseParameters) -> PaymentResult:
            if not is_authorization_success(resp.response_code):
                return _denied(order, resp, "MIT charge denied")
            return PaymentResult(
                success=True,
                order=order,
                response_code=resp.response_code,
                authorization_code=resp.authorization_code,
                card_brand=resp.card_brand,
                last_four=resp.last_four,
                cof_txn_id=resp.cof_txn_id or cof_txn_id,
            )

        return await self._run("charge_stored_token", params, interpret)

    async def refund(self, original_order: str, amount_cents: int) -> PaymentResult:
        """Refund (fully or partially) the payment made under ``original_order``."""
        params = MerchantParameters(
            transaction_type=TransactionType.REFUND,
            order=original_order,
            amount_cents=amount_cents,
        )

        def interpret(resp: ResponseParameters) -> PaymentResult:
            if not is_refund_success(resp.response_code):
                return _denied(original_order, resp, "Refund denied")
            return PaymentResult(
                success=True,
                order=original_order,
                response_code=resp.response_code,
                authorization_code=resp.authorization_code,
            )

        return await self._run("refund", params, interpret)

    async def delete_token(self, order: str, token: str) -> PaymentResult:
        """Delete a stored card reference at the processor."""
        params = MerchantParameters(
            transaction_type=TransactionType.DELETE_REFERENCE,
            order=order,
            amount_cents=0,
            identifier=token,
        )

        def interpret(resp: ResponseParameters) -> PaymentResult:
            if not is_refund_success(resp.response_code):
                return _denied(order, resp, "Token deletion denied")
            return PaymentResult(success=True, order=order, response_code=resp.response_code)

        return await self._run("delete_token", params, interpret)

    async def _run(
        self,
        name: str,
        params: MerchantParameters,
        interpret: Callable[[ResponseParameters], PaymentResult],
    ) -> PaymentResult:
        try:
            envelope = self._gateway.build_signed_request(params)
            result = await self._gateway.execute(envelope)
        except ProcessorError as e:
            logger.error("%s order=%s rejected by processor: %s", name, params.order, e)
            return PaymentResult(success=False, order=params.order, error=str(e), error_code=e.error_code)
        except TransportError as e:
            logger.error("%s order=%s transport error: %s", name, params.order, e)
            return PaymentResult(success=False, order=params.order, error=str(e), error_code=NETWORK)

        if not result.verified:
            logger.error("%s order=%s: response signature verification failed", name, params.order)
            return PaymentResult(
                success=False,
                order=params.order,
                error="Signature verification failed",
                error_code=SIG_FAIL,
            )

        outcome = interpret(result.params)
        if not outcome.success:
            logger.warning("%s order=%s denied (code %s)", name, params.order, outcome.response_code)
        return outcome


def _denied(order: str, resp: ResponseParameters, message: str) -> PaymentResult:
    code = resp.response_code or ""
    return PaymentResult(
        success=False,
        order=order,
        response_code=resp.response_code,
        error=f"{message} (code: {code or 'none'})",
        error_code=code or "UNKNOWN",
    )
