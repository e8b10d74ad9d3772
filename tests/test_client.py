"""Tests for the signed REST client."""

import httpx
import pytest

from redsys_core.config import REDSYS_ENDPOINTS, SIGNATURE_VERSION, Settings
from redsys_core.exceptions import ConfigurationError, ProcessorError, TransportError
from redsys_core.models.enums import TransactionType
from redsys_core.protocol.codec import decode_parameters
from redsys_core.protocol.parameters import MerchantParameters
from redsys_core.protocol.signature import create_signature
from redsys_core.providers.base import SignedEnvelope
from redsys_core.providers.redsys_client import RedsysClient

from tests.conftest import MERCHANT_CODE, NOTIFICATION_URL, SECRET_KEY

ORDER = "2503X0000001"


def _params(**overrides) -> MerchantParameters:
    values = {"transaction_type": TransactionType.AUTHORIZATION, "order": ORDER, "amount_cents": 1000}
    values.update(overrides)
    return MerchantParameters(**values)


class TestConfiguration:
    def test_missing_secret_key(self):
        with pytest.raises(ConfigurationError):
            RedsysClient("", MERCHANT_CODE, REDSYS_ENDPOINTS["test"])

    def test_missing_merchant_code(self):
        with pytest.raises(ConfigurationError):
            RedsysClient(SECRET_KEY, "", REDSYS_ENDPOINTS["test"])

    def test_missing_endpoint(self):
        with pytest.raises(ConfigurationError):
            RedsysClient(SECRET_KEY, MERCHANT_CODE, {"execute": "https://example.test/rest"})

    @pytest.mark.asyncio
    async def test_from_settings_uses_environment_endpoints(self):
        config = Settings(
            redsys_env="production",
            redsys_secret_key=SECRET_KEY,
            redsys_merchant_code=MERCHANT_CODE,
            base_url="https://club.example/",
        )
        async with RedsysClient.from_settings(config) as client:
            envelope = client.build_signed_request(_params())
        wire = decode_parameters(envelope.encoded_parameters)
        assert wire["DS_MERCHANT_MERCHANTURL"] == "https://club.example/api/payments/notification"
        assert config.endpoints == REDSYS_ENDPOINTS["production"]


class TestBuildSignedRequest:
    def test_merges_account_defaults(self, redsys_client):
        envelope = redsys_client.build_signed_request(_params())
        wire = decode_parameters(envelope.encoded_parameters)

        assert envelope.signature_version == SIGNATURE_VERSION
        assert wire["DS_MERCHANT_MERCHANTCODE"] == MERCHANT_CODE
        assert wire["DS_MERCHANT_TERMINAL"] == "1"
        assert wire["DS_MERCHANT_CURRENCY"] == "978"
        assert wire["DS_MERCHANT_MERCHANTURL"] == NOTIFICATION_URL

    def test_explicit_values_win(self, redsys_client):
        envelope = redsys_client.build_signed_request(_params(currency="840", terminal="2"))
        wire = decode_parameters(envelope.encoded_parameters)
        assert wire["DS_MERCHANT_CURRENCY"] == "840"
        assert wire["DS_MERCHANT_TERMINAL"] == "2"

    def test_signed_with_order(self, redsys_client):
        envelope = redsys_client.build_signed_request(_params())
        assert envelope.signature == create_signature(SECRET_KEY, envelope.encoded_parameters, ORDER)

    def test_envelope_json_shape(self, redsys_client):
        body = redsys_client.build_signed_request(_params()).to_json()
        assert set(body) == {"Ds_SignatureVersion", "Ds_MerchantParameters", "Ds_Signature"}
        assert SignedEnvelope.from_json(body).signature == body["Ds_Signature"]

    def test_envelope_missing_field(self):
        with pytest.raises(ValueError):
            SignedEnvelope.from_json({"Ds_SignatureVersion": SIGNATURE_VERSION})


@pytest.mark.asyncio
async def test_execute_verified(redsys_client, mock_gateway):
    result = await redsys_client.execute(redsys_client.build_signed_request(_params()))

    assert result.verified is True
    assert result.params.order == ORDER
    assert result.params.response_code == "0000"
    assert mock_gateway.requests[0]["operation"] == "execute"


@pytest.mark.asyncio
async def test_pre_authenticate_endpoint(redsys_client, mock_gateway):
    result = await redsys_client.pre_authenticate(redsys_client.build_signed_request(_params()))

    assert result.verified is True
    assert "Ds_EMV3DS" in result.params.raw
    assert mock_gateway.requests[0]["operation"] == "pre_authenticate"


@pytest.mark.asyncio
async def test_forged_response_not_verified(redsys_client, mock_gateway):
    mock_gateway.queue_bad_signature("0000")
    result = await redsys_client.execute(redsys_client.build_signed_request(_params()))
    assert result.verified is False
    assert result.params.response_code == "0000"


@pytest.mark.asyncio
async def test_response_without_order_not_verified(redsys_client, mock_gateway):
    mock_gateway.queue_missing_order("0000")
    result = await redsys_client.execute(redsys_client.build_signed_request(_params()))
    assert result.verified is False


@pytest.mark.asyncio
async def test_http_error_raises_transport_error(redsys_client, mock_gateway):
    mock_gateway.queue_http_error(503)
    with pytest.raises(TransportError) as exc_info:
        await redsys_client.execute(redsys_client.build_signed_request(_params()))
    assert exc_info.value.status_code == 503
    assert "Service Unavailable" in exc_info.value.body


@pytest.mark.asyncio
async def test_timeout_raises_transport_error(redsys_client, mock_gateway):
    mock_gateway.queue_timeout()
    with pytest.raises(TransportError) as exc_info:
        await redsys_client.execute(redsys_client.build_signed_request(_params()))
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_request_signed_with_wrong_key_rejected(mock_gateway):
    other_key = "Mk9m98IfEblmPfrpsawt7BmxObt98Jev"
    async with httpx.AsyncClient(transport=mock_gateway.transport) as http:
        client = RedsysClient(other_key, MERCHANT_CODE, REDSYS_ENDPOINTS["test"], http_client=http)
        with pytest.raises(ProcessorError) as exc_info:
            await client.execute(client.build_signed_request(_params()))
    assert exc_info.value.error_code == "SIS0042"


@pytest.mark.asyncio
async def test_non_json_body_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = RedsysClient(SECRET_KEY, MERCHANT_CODE, REDSYS_ENDPOINTS["test"], http_client=http)
        with pytest.raises(TransportError):
            await client.execute(client.build_signed_request(_params()))
