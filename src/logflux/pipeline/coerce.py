"""Numeric coercion of raw string fields."""

from __future__ import annotations

from typing import Union

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def coerce(s: str) -> Union[int, float, str]:
    """Return s in its most specific native form.

    Integers (including 0x/0o/0b prefixed) that fit in 64 bits come
    back as int, anything else float() accepts as float, and everything
    else unchanged. Text with surrounding whitespace or digit
    separators is never numeric. Never raises.
    """
    if s != s.strip() or "_" in s:
        return s
    try:
        value = int(s, 0)
    except ValueError:
        pass
    else:
        if INT64_MIN <= value <= INT64_MAX:
            return value
    try:
        return float(s)
    except ValueError:
        return s
