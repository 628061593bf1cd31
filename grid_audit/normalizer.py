"""Atom normalizer: parse raw grid tokens into typed value/unit atoms.

The normalizer only recognizes literal shapes; it never interprets contractual
meaning. Patterns are anchored to the whole token so that noisy concatenations
such as ``"50 XP"`` are rejected instead of being read as the nearest unit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Tuple

from .logging import get_logger
from .models import DIRECT_TEXT_KEY, SEVERITY_WARNING, Atom, QcWarning
from .numeral import NUMBER, parse_number

__all__ = ["NormalizerResult", "normalize_atom", "normalize_all", "UNIT_UNKNOWN"]

logger = get_logger(__name__)

UNIT_UNKNOWN = "UNKNOWN"
ATOM_TYPE = "RULE"


def _numeric(match: re.Match) -> Any:
    return parse_number(match.group(1))


# Checked in order; first full match wins.
_PATTERNS: Tuple[Tuple[str, re.Pattern, Callable[[re.Match], Any]], ...] = (
    ("NONE", re.compile(r"^sin\s*tope$", re.IGNORECASE), lambda m: "SIN_TOPE"),
    (
        "EXCLUSION",
        re.compile(r"^solo\s+cobertura\s+libre\s+elecci[óo]n$", re.IGNORECASE),
        lambda m: False,
    ),
    ("UF", re.compile(rf"^({NUMBER})\s*UF$", re.IGNORECASE), _numeric),
    ("VAM", re.compile(rf"^({NUMBER})\s*VAM$", re.IGNORECASE), _numeric),
    ("V.A.", re.compile(rf"^({NUMBER})\s*V\.?A\.?$", re.IGNORECASE), _numeric),
    ("AC2", re.compile(rf"^({NUMBER})\s*AC2$", re.IGNORECASE), _numeric),
    ("%", re.compile(rf"^({NUMBER})\s*%$"), _numeric),
)


@dataclass(slots=True)
class NormalizerResult:
    atoms: List[Atom] = field(default_factory=list)
    warnings: List[QcWarning] = field(default_factory=list)


def normalize_atom(raw_text: str, key: str = DIRECT_TEXT_KEY) -> NormalizerResult:
    """Parse one token. Unparseable input yields an ``UNKNOWN`` atom with zero confidence."""
    text = (raw_text or "").strip()

    for unit, pattern, convert in _PATTERNS:
        match = pattern.match(text)
        if match:
            atom = Atom(
                type=ATOM_TYPE,
                key=key,
                value=convert(match),
                unit=unit,
                original_text=text,
                parse_confidence=1.0,
            )
            return NormalizerResult(atoms=[atom])

    logger.debug("atom_unparseable", text=text)
    return NormalizerResult(
        atoms=[
            Atom(
                type=ATOM_TYPE,
                key=key,
                value=text,
                unit=UNIT_UNKNOWN,
                original_text=text,
                parse_confidence=0.0,
            )
        ],
        warnings=[
            QcWarning(
                type="UNPARSEABLE_ATOM",
                message=f'Unable to parse: "{text}"',
                severity=SEVERITY_WARNING,
            )
        ],
    )


def normalize_all(raw_texts: Iterable[str], key: str = DIRECT_TEXT_KEY) -> NormalizerResult:
    result = NormalizerResult()
    for text in raw_texts:
        single = normalize_atom(text, key=key)
        result.atoms.extend(single.atoms)
        result.warnings.extend(single.warnings)
    return result
