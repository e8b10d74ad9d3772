"""
Ds_MerchantParameters codec.

The processor exchanges request and response fields as a base64-encoded
compact JSON object. Decoding accepts both the standard and the URL-safe
base64 alphabets, since responses arrive in either.
"""

import base64
import binascii
import json
from typing import Any


def normalize_base64(value: str) -> str:
    """Convert URL-safe base64 (``-``/``_``) to the standard alphabet and restore padding."""
    value = value.strip().replace("-", "+").replace("_", "/")
    return value + "=" * (-len(value) % 4)


def encode_parameters(params: dict[str, str]) -> str:
    """Serialize a field mapping to compact JSON and base64-encode it."""
    payload = json.dumps(params, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_parameters(encoded: str) -> dict[str, Any]:
    """
    Reverse :func:`encode_parameters`.

    Raises:
        ValueError: If the input is not base64, not UTF-8 JSON, or not a JSON object.
    """
    try:
        raw = base64.b64decode(normalize_base64(encoded), validate=True)
        decoded = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Malformed merchant parameters: {e}") from e

    if not isinstance(decoded, dict):
        raise ValueError("Merchant parameters must decode to a JSON object")
    return decoded
