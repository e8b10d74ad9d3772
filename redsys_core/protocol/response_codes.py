"""
Ds_Response classification.

The numeric response code is the only authoritative result:
  0000-0099  authorization / pre-authorization OK
  0900       refund or confirmation OK
  0400       cancellation OK
  anything else is a denial; the code itself is the error classifier.
"""

from typing import Optional

AUTH_OK_MIN = 0
AUTH_OK_MAX = 99
REFUND_OK = 900
CANCEL_OK = 400


def parse_response_code(code: Optional[str]) -> Optional[int]:
    if code is None:
        return None
    try:
        return int(str(code).strip())
    except ValueError:
        return None


def is_authorization_success(code: Optional[str]) -> bool:
    value = parse_response_code(code)
    return value is not None and AUTH_OK_MIN <= value <= AUTH_OK_MAX


def is_refund_success(code: Optional[str]) -> bool:
    return parse_response_code(code) == REFUND_OK


def is_cancellation_success(code: Optional[str]) -> bool:
    return parse_response_code(code) == CANCEL_OK


def is_success_response(code: Optional[str]) -> bool:
    """Any success class: authorization, refund/confirmation or cancellation."""
    return is_authorization_success(code) or is_refund_success(code) or is_cancellation_success(code)
