"""
Case identifier generation.

Identifiers look like ``FIR-20240315-482``: the UTC registration date and a
random three digit suffix. Uniqueness is enforced by the store's unique key on
``firs.fir_id``, not here.
"""

import random
import re
from datetime import datetime, timezone
from typing import Optional

FIR_ID_PREFIX = "FIR"
FIR_ID_PATTERN = re.compile(r"^FIR-\d{8}-\d{3}$")

SUFFIX_MIN = 100
SUFFIX_MAX = 999

_rng = random.SystemRandom()


def generate_fir_id(now: Optional[datetime] = None, rng: Optional[random.Random] = None) -> str:
    """
    Generate a case identifier ``FIR-YYYYMMDD-NNN``.

    Args:
        now: Timestamp to take the date from (default: current UTC time)
        rng: Random source for the suffix (default: system random)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)

    suffix = (rng or _rng).randint(SUFFIX_MIN, SUFFIX_MAX)
    return f"{FIR_ID_PREFIX}-{now:%Y%m%d}-{suffix:03d}"


def is_valid_fir_id(value) -> bool:
    """True when value has the stable ``FIR-<8 digits>-<3 digits>`` shape."""
    return isinstance(value, str) and FIR_ID_PATTERN.match(value) is not None
