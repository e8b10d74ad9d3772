"""Tests for payment operations over the mock processor."""

import httpx
import pytest

from redsys_core.config import REDSYS_ENDPOINTS
from redsys_core.engine.operations import NETWORK, SIG_FAIL, PaymentOperations
from redsys_core.providers.mock_gateway import DENIAL_CODE, MockRedsysGateway
from redsys_core.providers.redsys_client import RedsysClient

from tests.conftest import MERCHANT_CODE, SECRET_KEY

ORDER = "2503M0000001"


@pytest.mark.asyncio
async def test_authorize_with_tokenization(operations, mock_gateway):
    result = await operations.authorize_with_operation_token("idoper-123", ORDER, 1000, tokenize=True)

    assert result.success is True
    assert result.response_code == "0000"
    assert result.token
    assert result.token_expiry == "3412"
    assert result.cof_txn_id
    assert result.last_four == "0004"

    sent = mock_gateway.requests[0]
    assert sent["DS_MERCHANT_IDOPER"] == "idoper-123"
    assert sent["DS_MERCHANT_IDENTIFIER"] == "REQUIRED"
    assert sent["DS_MERCHANT_COF_INI"] == "S"
    assert sent["DS_MERCHANT_COF_TYPE"] == "R"


@pytest.mark.asyncio
async def test_authorize_without_tokenization(operations, mock_gateway):
    result = await operations.authorize_with_operation_token("idoper-123", ORDER, 1000)

    assert result.success is True
    assert result.token is None
    assert "DS_MERCHANT_IDENTIFIER" not in mock_gateway.requests[0]


@pytest.mark.asyncio
async def test_denial_uses_response_code_as_classifier(operations, mock_gateway):
    mock_gateway.queue_response(DENIAL_CODE)
    result = await operations.authorize_with_operation_token("idoper-123", ORDER, 1000, tokenize=True)

    assert result.success is False
    assert result.response_code == DENIAL_CODE
    assert result.error_code == DENIAL_CODE
    assert result.token is None


@pytest.mark.asyncio
async def test_charge_stored_token_is_mit(operations, mock_gateway):
    result = await operations.charge_stored_token("2503R0000001", 1000, "tok_abc", "999999999999999")

    assert result.success is True
    assert result.cof_txn_id == "999999999999999"

    sent = mock_gateway.requests[0]
    assert sent["DS_MERCHANT_IDENTIFIER"] == "tok_abc"
    assert sent["DS_MERCHANT_COF_TXNID"] == "999999999999999"
    assert sent["DS_MERCHANT_EXCEP_SCA"] == "MIT"
    assert sent["DS_MERCHANT_DIRECTPAYMENT"] == "true"
    assert "DS_MERCHANT_IDOPER" not in sent


@pytest.mark.asyncio
async def test_charge_stored_token_takes_rotated_cof_id():
    gateway = MockRedsysGateway(SECRET_KEY, rotate_cof_txn_id=True)
    async with httpx.AsyncClient(transport=gateway.transport) as http:
        client = RedsysClient(SECRET_KEY, MERCHANT_CODE, REDSYS_ENDPOINTS["test"], http_client=http)
        result = await PaymentOperations(client).charge_stored_token(
            "2503R0000001", 1000, "tok_abc", "999999999999999"
        )

    assert result.success is True
    assert result.cof_txn_id != "999999999999999"


@pytest.mark.asyncio
async def test_bad_signature_is_sig_fail_even_when_approved(operations, mock_gateway):
    mock_gateway.queue_bad_signature("0000")
    result = await operations.charge_stored_token("2503R0000001", 1000, "tok_abc", "999999999999999")

    assert result.success is False
    assert result.error_code == SIG_FAIL
    assert result.signature_failed


@pytest.mark.asyncio
async def test_timeout_is_network_failure(operations, mock_gateway):
    mock_gateway.queue_timeout()
    result = await operations.charge_stored_token("2503R0000001", 1000, "tok_abc", "999999999999999")

    assert result.success is False
    assert result.error_code == NETWORK


@pytest.mark.asyncio
async def test_http_error_is_network_failure(operations, mock_gateway):
    mock_gateway.queue_http_error(502, "Bad Gateway")
    result = await operations.refund(ORDER, 1000)

    assert result.success is False
    assert result.error_code == NETWORK


class TestRefund:
    @pytest.mark.asyncio
    async def test_refund_uses_original_order(self, operations, mock_gateway):
        result = await operations.refund(ORDER, 500)

        assert result.success is True
        assert result.response_code == "0900"
        sent = mock_gateway.requests[0]
        assert sent["DS_MERCHANT_ORDER"] == ORDER
        assert sent["DS_MERCHANT_TRANSACTIONTYPE"] == "3"
        assert sent["DS_MERCHANT_AMOUNT"] == "500"

    @pytest.mark.asyncio
    async def test_authorization_code_is_not_refund_success(self, operations, mock_gateway):
        mock_gateway.queue_response("0000")
        result = await operations.refund(ORDER, 500)

        assert result.success is False
        assert result.error_code == "0000"


class TestDeleteToken:
    @pytest.mark.asyncio
    async def test_delete_token(self, operations, mock_gateway):
        result = await operations.delete_token("2503X0000001", "tok_abc")

        assert result.success is True
        sent = mock_gateway.requests[0]
        assert sent["DS_MERCHANT_TRANSACTIONTYPE"] == "44"
        assert sent["DS_MERCHANT_IDENTIFIER"] == "tok_abc"
        assert sent["DS_MERCHANT_AMOUNT"] == "0"

    @pytest.mark.asyncio
    async def test_delete_token_denied(self, operations, mock_gateway):
        mock_gateway.queue_response("0195")
        result = await operations.delete_token("2503X0000001", "tok_abc")

        assert result.success is False
        assert result.error_code == "0195"
