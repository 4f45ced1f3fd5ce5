"""Lenient numeric coercion for user- and LLM-supplied values.

Estimate inputs arrive from form fields and model output, so numbers may be
strings ("1,200 sq ft"), None, booleans or garbage. These helpers never raise.
"""

import math
import re
from typing import Any, Optional

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_float(value: Any) -> Optional[float]:
    """Parse the leading number of a value, or None when there is none.

    Strings are parsed by their numeric prefix ("12.5 gallons" -> 12.5),
    thousands separators are dropped. Booleans, NaN and infinities are
    not numbers.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value.replace(",", ""))
        if not match:
            return None
        result = float(match.group(0))
    else:
        try:
            result = float(value)
        except (TypeError, ValueError):
            return None

    if math.isnan(result) or math.isinf(result):
        return None
    return result


def number_or(value: Any, default: float) -> float:
    """Return the parsed number, or ``default`` when missing, invalid or zero."""
    parsed = parse_float(value)
    return parsed if parsed else default


def non_negative(value: Any) -> float:
    """Parsed number floored at zero (missing/invalid -> 0)."""
    parsed = parse_float(value)
    if parsed is None or parsed < 0:
        return 0.0
    return parsed
