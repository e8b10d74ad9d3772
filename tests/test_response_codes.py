"""Tests for Ds_Response classification."""

from redsys_core.protocol.response_codes import (
    is_authorization_success,
    is_cancellation_success,
    is_refund_success,
    is_success_response,
    parse_response_code,
)


class TestAuthorization:
    def test_success_range(self):
        for code in ("0", "00", "0000", "0099", "99"):
            assert is_authorization_success(code)

    def test_denials(self):
        for code in ("101", "0190", "0900", "0400", "9915"):
            assert not is_authorization_success(code)

    def test_missing_or_garbage(self):
        assert not is_authorization_success(None)
        assert not is_authorization_success("")
        assert not is_authorization_success("OK")


class TestRefundAndCancellation:
    def test_refund_only_900(self):
        assert is_refund_success("900")
        assert is_refund_success("0900")
        assert not is_authorization_success("900")
        assert not is_refund_success("0000")

    def test_cancellation_only_400(self):
        assert is_cancellation_success("0400")
        assert not is_cancellation_success("0900")

    def test_any_success(self):
        assert is_success_response("0000")
        assert is_success_response("0900")
        assert is_success_response("0400")
        assert not is_success_response("0101")


def test_parse_response_code():
    assert parse_response_code(" 0190 ") == 190
    assert parse_response_code(None) is None
    assert parse_response_code("SIS0042") is None
