"""
Order number generation for RedSys.

Format: YYMM + tag (1 char) + random (7 chars) = 12 chars

Constraints:
  - Max 12 characters
  - First 4 characters must be numeric
  - Remaining characters: [0-9A-Za-z]

The order number doubles as the signature diversification input and the
processor's correlation key, so it must be unique per merchant account.
"""

import logging
import random
import string
from datetime import datetime, timezone
from typing import Optional

from redsys_core.models.enums import OrderTag

logger = logging.getLogger("redsys_core.order_number")

ALPHANUMERIC = string.digits + string.ascii_uppercase + string.ascii_lowercase
RANDOM_LENGTH = 7
MIN_LENGTH = 4
MAX_LENGTH = 12

_system_random = random.SystemRandom()


def _random_suffix(length: int) -> str:
    try:
        return "".join(_system_random.choice(ALPHANUMERIC) for _ in range(length))
    except NotImplementedError:
        # No OS entropy source on this platform.
        logger.warning(
            "os.urandom unavailable; order numbers fall back to a non-cryptographic generator"
        )
        return "".join(random.choice(ALPHANUMERIC) for _ in range(length))


def generate_order_number(tag: OrderTag = OrderTag.GENERIC, now: Optional[datetime] = None) -> str:
    """
    Generate a unique order number, e.g. ``"2610Ra3Rk7Wz"``.

    Args:
        tag: Operation class encoded in the 5th character.
        now: Date used for the YYMM prefix (defaults to current UTC time).
    """
    now = now or datetime.now(timezone.utc)
    tag = OrderTag(tag)
    return f"{now:%y%m}{tag.value}{_random_suffix(RANDOM_LENGTH)}"


def is_valid_order_number(order: str) -> bool:
    """Check an order number against the processor's format rules."""
    if not MIN_LENGTH <= len(order) <= MAX_LENGTH:
        return False
    if not (order[:4].isascii() and order[:4].isdigit()):
        return False
    return all(ch in ALPHANUMERIC for ch in order)


def extract_tag(order: str) -> Optional[OrderTag]:
    """Return the operation tag in the 5th character, or None if absent or unknown."""
    if len(order) < 5:
        return None
    try:
        return OrderTag(order[4])
    except ValueError:
        return None
