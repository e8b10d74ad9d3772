"""
RedSys REST API client.

Calls ``trataPeticionREST`` (execute) and ``iniciaPeticionREST``
(pre-authenticate). ``build_signed_request`` is the only way an outbound
envelope gets built: it merges account defaults (currency, merchant code,
terminal, notification URL) into the request and signs it with the order
number the merged parameters carry.

One blocking round-trip per call, no retries. The per-call timeout comes from
the configured ``httpx.AsyncClient``.
"""

import logging
from dataclasses import replace
from typing import Optional

import httpx

from redsys_core.config import CURRENCY_EUR, SIGNATURE_VERSION, Settings, settings
from redsys_core.exceptions import ConfigurationError, ProcessorError, TransportError
from redsys_core.protocol.codec import decode_parameters, encode_parameters
from redsys_core.protocol.parameters import MerchantParameters, ResponseParameters
from redsys_core.protocol.signature import create_signature, verify_signature
from redsys_core.providers.base import PaymentGateway, RestResult, SignedEnvelope

logger = logging.getLogger("redsys_core.client")


class RedsysClient(PaymentGateway):
    """Signed REST client for one merchant account."""

    def __init__(
        self,
        secret_key: str,
        merchant_code: str,
        endpoints: dict[str, str],
        terminal: str = "1",
        currency: str = CURRENCY_EUR,
        notification_url: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not secret_key:
            raise ConfigurationError("Missing merchant secret key (REDSYS_SECRET_KEY)")
        if not merchant_code:
            raise ConfigurationError("Missing merchant code (REDSYS_MERCHANT_CODE)")
        for operation in ("execute", "pre_authenticate"):
            if not endpoints.get(operation):
                raise ConfigurationError(f"Missing endpoint URL for {operation}")

        self._secret_key = secret_key
        self._merchant_code = merchant_code
        self._terminal = terminal
        self._currency = currency
        self._notification_url = notification_url
        self._endpoints = endpoints
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "RedsysClient":
        return cls(
            secret_key=config.redsys_secret_key,
            merchant_code=config.redsys_merchant_code,
            endpoints=config.endpoints,
            terminal=config.redsys_terminal,
            currency=config.redsys_currency,
            notification_url=config.notification_url,
            timeout=config.http_timeout_seconds,
            http_client=http_client,
        )

    @property
    def secret_key(self) -> str:
        return self._secret_key

    def build_signed_request(self, params: MerchantParameters) -> SignedEnvelope:
        merged = replace(
            params,
            currency=params.currency or self._currency,
            merchant_code=params.merchant_code or self._merchant_code,
            terminal=params.terminal or self._terminal,
            merchant_url=params.merchant_url or self._notification_url,
        )
        encoded = encode_parameters(merged.to_wire())
        return SignedEnvelope(
            signature_version=SIGNATURE_VERSION,
            encoded_parameters=encoded,
            signature=create_signature(self._secret_key, encoded, merged.order),
        )

    async def execute(self, envelope: SignedEnvelope) -> RestResult:
        return await self._post("execute", envelope)

    async def pre_authenticate(self, envelope: SignedEnvelope) -> RestResult:
        return await self._post("pre_authenticate", envelope)

    async def _post(self, operation: str, envelope: SignedEnvelope) -> RestResult:
        url = self._endpoints[operation]

        try:
            response = await self._http.post(url, json=envelope.to_json())
        except httpx.TimeoutException as e:
            raise TransportError(f"RedSys {operation} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"RedSys {operation} network error: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"RedSys {operation} HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                f"RedSys {operation} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if isinstance(body, dict) and "errorCode" in body and "Ds_MerchantParameters" not in body:
            raise ProcessorError(
                f"RedSys {operation} rejected the request: {body['errorCode']}",
                error_code=str(body["errorCode"]),
                status_code=response.status_code,
                body=response.text,
            )

        try:
            raw = SignedEnvelope.from_json(body)
        except ValueError as e:
            raise TransportError(
                f"RedSys {operation} returned a malformed envelope: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        try:
            decoded = decode_parameters(raw.encoded_parameters)
        except ValueError as e:
            logger.error("RedSys %s response parameters could not be decoded: %s", operation, e)
            decoded = {}

        params = ResponseParameters.from_wire(decoded)
        verified = bool(decoded) and verify_signature(self._secret_key, raw.encoded_parameters, raw.signature)
        if not verified:
            logger.error(
                "RedSys %s response signature verification failed (order=%s)",
                operation,
                params.order or "-",
            )

        logger.info(
            "RedSys %s order=%s response=%s verified=%s",
            operation,
            params.order or "-",
            params.response_code or "-",
            verified,
        )
        return RestResult(params=params, raw=raw, verified=verified)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "RedsysClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
