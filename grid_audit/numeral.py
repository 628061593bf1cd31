"""Helpers for parsing numbers printed in benefit grids."""

from __future__ import annotations

import re

__all__ = ["NUMBER", "parse_number", "find_number"]

# Either "." or "," may be the decimal separator; grids never print thousands separators on caps.
NUMBER = r"\d+(?:[.,]\d+)?"
_NUMBER_PATTERN = re.compile(NUMBER)


def parse_number(raw: str) -> float:
    """Parse ``16,0`` or ``16.0`` into ``16.0``."""
    if raw is None:
        raise ValueError("value is required")
    value = raw.strip()
    if not value:
        raise ValueError("value is required")
    try:
        return float(value.replace(",", "."))
    except ValueError as exc:
        raise ValueError(f"unable to parse numeric value from '{raw}'") from exc


def find_number(text: str) -> float | None:
    """Return the first number embedded in ``text``, if any."""
    match = _NUMBER_PATTERN.search(text or "")
    if not match:
        return None
    return parse_number(match.group(0))
