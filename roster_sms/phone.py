"""
Phone number forms.

Two canonical forms are kept apart on purpose:

* bare form    -> ``8165550123``   (roster identity matching)
* dialing form -> ``+18165550123`` (vendor destination)

Lengths other than 10/11 digits are passed through uncorrected.
"""

from __future__ import annotations

import re
from typing import Any

_NON_DIGIT = re.compile(r"[^\d]")
COUNTRY_DIGIT = "1"


def only_digits(value: Any) -> str:
    """Extract all digits from a string or number."""
    if value is None:
        return ""
    return _NON_DIGIT.sub("", str(value))


def to_bare(value: Any) -> str:
    """Digits only, with a leading domestic country digit dropped from 11-digit values."""
    d = only_digits(value)
    if len(d) == 11 and d.startswith(COUNTRY_DIGIT):
        d = d[1:]
    return d


def to_dialing(value: Any) -> str:
    """E.164-style dialing form (``+1`` prefix for 10-digit input)."""
    d = only_digits(value)
    if not d:
        return ""
    if len(d) == 10:
        d = COUNTRY_DIGIT + d
    return "+" + d


def same_number(a: Any, b: Any) -> bool:
    ba, bb = to_bare(a), to_bare(b)
    return bool(ba) and ba == bb
