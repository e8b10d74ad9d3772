"""
HMAC_SHA256_V1 request/response signatures.

Algorithm:
  1. Base64-decode the merchant secret key and normalize it to 24 bytes
  2. 3DES-CBC encrypt the order number (UTF-8, zero IV, PKCS#7) with that
     key; the ciphertext is the per-order diversified key
  3. HMAC-SHA256 over the base64 Ds_MerchantParameters string, keyed with
     the diversified key
  4. Base64-encode the digest

Verification recomputes the signature for the order number found inside the
response parameters and compares in constant time. It never raises: any
decoding problem is a failed verification.
"""

import base64
import binascii
import hashlib
import hmac
import logging
from typing import Any, Optional

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from redsys_core.protocol.codec import decode_parameters, normalize_base64

logger = logging.getLogger("redsys_core.signature")

ZERO_IV = b"\x00" * 8
DES3_KEY_SIZE = 24

# Response parameter names that may carry the order number, in lookup order.
ORDER_FIELDS = ("Ds_Order", "DS_ORDER", "DS_MERCHANT_ORDER")


def normalize_key(raw_key: bytes) -> bytes:
    """
    Fit a raw merchant key to the 24 bytes three-key 3DES expects.

    16-byte keys become K1|K2|K1, shorter keys are zero-padded, longer keys
    truncated.
    """
    if len(raw_key) == DES3_KEY_SIZE:
        return raw_key
    if len(raw_key) == 16:
        return raw_key + raw_key[:8]
    if len(raw_key) < DES3_KEY_SIZE:
        return raw_key.ljust(DES3_KEY_SIZE, b"\x00")
    return raw_key[:DES3_KEY_SIZE]


def diversify_key(secret_key: str, order: str) -> bytes:
    """Derive the per-order signing key: 3DES-CBC(merchant key, order)."""
    key = normalize_key(base64.b64decode(normalize_base64(secret_key)))

    padder = padding.PKCS7(64).padder()
    plaintext = padder.update(order.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(TripleDES(key), modes.CBC(ZERO_IV)).encryptor()
    return encryptor.update(plaintext) + encryptor.finalize()


def create_signature(secret_key: str, encoded_params: str, order: str) -> str:
    """
    Sign base64 merchant parameters for one order.

    Args:
        secret_key: Base64-encoded merchant secret key.
        encoded_params: The Ds_MerchantParameters string, exactly as sent.
        order: DS_MERCHANT_ORDER of the request (diversification input).

    Returns:
        Standard base64 signature.
    """
    digest = hmac.new(
        diversify_key(secret_key, order),
        encoded_params.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def extract_order(params: dict[str, Any]) -> Optional[str]:
    for field in ORDER_FIELDS:
        value = params.get(field)
        if value:
            return str(value)
    return None


def verify_signature(secret_key: str, encoded_params: str, received_signature: str) -> bool:
    """
    Verify a signed response or notification.

    Fails closed: a missing order number, an undecodable payload or
    signature, a length mismatch or any differing byte returns False.
    """
    try:
        order = extract_order(decode_parameters(encoded_params))
        if not order:
            logger.error("No order number found in response parameters")
            return False

        expected = base64.b64decode(
            normalize_base64(create_signature(secret_key, encoded_params, order))
        )
        received = base64.b64decode(normalize_base64(received_signature))
    except (ValueError, binascii.Error, TypeError) as e:
        logger.error("Signature verification failed to decode input: %s", e)
        return False

    if len(expected) != len(received):
        return False
    return hmac.compare_digest(expected, received)
