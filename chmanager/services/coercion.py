"""
Row value coercion.

Driver and server releases change the concrete numeric class of the same
logical column (UInt64 arrives as int, as float, or quoted). The report
pipeline treats that as data: every typed field is read through one of the
helpers below, which never raise and fall back to the zero value of the
target type.

    to_string:  str -> itself; anything else -> ""
    to_uint64:  int -> itself; float -> truncated; anything else -> 0
    to_float64: float -> itself; int -> widened; anything else -> 0.0
    to_string_list: list -> its string items; anything else -> []

Booleans are not numbers here. Negative or non-finite inputs to to_uint64
give 0; values above the unsigned 64-bit range are clamped to its maximum.
"""
import math
from typing import Any, List

UINT64_MAX = 2 ** 64 - 1


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def to_string(value: Any) -> str:
    """Return `value` when it is a string, else ""."""
    if isinstance(value, str):
        return value
    return ""


def to_uint64(value: Any) -> int:
    """Coerce `value` to an unsigned 64-bit count."""
    if _is_int(value):
        if value < 0:
            return 0
        return min(value, UINT64_MAX)
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return 0
        return min(int(value), UINT64_MAX)
    return 0


def to_string_list(value: Any) -> List[str]:
    """Array(String) cell as a list of strings; non-string items are dropped."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def to_float64(value: Any) -> float:
    """Coerce `value` to a float."""
    if isinstance(value, float):
        return value
    if _is_int(value):
        return float(value)
    return 0.0


__all__ = ["to_string", "to_uint64", "to_float64", "to_string_list", "UINT64_MAX"]
