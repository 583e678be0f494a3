# Hospital number (HN) parsing and numeric surrogate mapping
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

PREFIX = "HN"
DIGITS = 6
MAX_SURROGATE = 10 ** DIGITS - 1

_STRIP_RE = re.compile(r"[^A-Z0-9]")


@dataclass(frozen=True)
class InvalidFormat:
    """Rejection value returned (never raised) when a hospital number does not parse."""
    reason: str
    message: str


def parse(raw: object) -> Union[str, InvalidFormat]:
    """
    Canonicalize a raw hospital number.

    Uppercases, strips anything outside [A-Z0-9], requires "HN" followed by
    1-6 digits and left-pads the digits to 6. "hn-12" -> "HN000012".
    """
    if raw is None:
        return InvalidFormat("empty", "Hospital number is required")
    text = _STRIP_RE.sub("", str(raw).upper())
    if not text:
        return InvalidFormat("empty", "Hospital number is required")
    if not text.startswith(PREFIX):
        return InvalidFormat("wrong_prefix", f"Hospital number must start with {PREFIX}")

    digits = text[len(PREFIX):]
    if not digits:
        return InvalidFormat("no_digits", f"Hospital number needs digits after {PREFIX}")
    if not (digits.isascii() and digits.isdigit()):
        return InvalidFormat("non_digit", f"Only digits may follow {PREFIX}")
    if len(digits) > DIGITS:
        return InvalidFormat("too_many_digits", f"Hospital number allows at most {DIGITS} digits")
    return PREFIX + digits.zfill(DIGITS)


def is_valid(raw: object) -> bool:
    return not isinstance(parse(raw), InvalidFormat)


def to_surrogate(hn: str) -> int:
    """HN000042 -> 42. Raises ValueError for anything that is not a valid HN."""
    canonical = parse(hn)
    if isinstance(canonical, InvalidFormat):
        raise ValueError(canonical.message)
    return int(canonical[len(PREFIX):])


def from_surrogate(n: int) -> str:
    """42 -> HN000042"""
    if isinstance(n, bool) or not isinstance(n, int):
        raise TypeError("surrogate must be an int")
    if n < 0 or n > MAX_SURROGATE:
        raise ValueError(f"surrogate must be between 0 and {MAX_SURROGATE}")
    return f"{PREFIX}{n:0{DIGITS}d}"


def resolve(key: str) -> Union[str, InvalidFormat]:
    """Resolve a path key that is either a hospital number or a bare surrogate integer."""
    key = (key or "").strip()
    if key.isascii() and key.isdigit():
        if len(key) > DIGITS:
            return InvalidFormat("too_many_digits", f"Hospital number allows at most {DIGITS} digits")
        return from_surrogate(int(key))
    return parse(key)
