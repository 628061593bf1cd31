"""Keyword rule tables used to classify free-text table blocks.

Rules are data: each table is an ordered sequence of ``KeywordRule`` objects
and the first matching rule wins. A vocabulary can be overridden from a JSON
file whose top-level keys replace the defaults one-for-one.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .logging import get_logger

logger = get_logger(__name__)

EXPANSIVO = "EXPANSIVO"
LIMITANTE = "LIMITANTE"
NEUTRO = "NEUTRO"

PREFERENTE_RED = "PREFERENTE_RED"
PREFERENTE_MODAL = "PREFERENTE_MODAL"
PORCENTAJE = "PORCENTAJE"
TOPE_EVENTO = "TOPE_EVENTO"
TOPE_ANUAL_NFE = "TOPE_ANUAL_NFE"
FINANCIAL_DOMAIN = "FINANCIAL_DOMAIN"
SCOPES = frozenset({PREFERENTE_RED, PREFERENTE_MODAL, PORCENTAJE, TOPE_EVENTO, TOPE_ANUAL_NFE, FINANCIAL_DOMAIN})
PREFERENTE_SCOPES = frozenset({PREFERENTE_RED, PREFERENTE_MODAL})


@dataclass(slots=True, frozen=True)
class KeywordRule:
    """Case-insensitive regex patterns; any one matches unless ``require_all`` is set."""

    label: str
    patterns: Tuple[str, ...]
    require_all: bool = False

    def matches(self, text: str) -> bool:
        hits = (re.search(p, text or "", re.IGNORECASE) for p in self.patterns)
        if self.require_all:
            return bool(self.patterns) and all(hits)
        return any(hits)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "KeywordRule":
        patterns = raw.get("patterns")
        if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
            raise ValueError(f"Rule {raw.get('label')!r} needs a list of string patterns")
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"Invalid pattern {pattern!r}: {exc}") from exc
        return cls(
            label=str(raw.get("label", "")),
            patterns=tuple(patterns),
            require_all=bool(raw.get("require_all", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "patterns": list(self.patterns), "require_all": self.require_all}


@dataclass(slots=True, frozen=True)
class Vocabulary:
    effect_rules: Tuple[KeywordRule, ...]
    column_scopes: Dict[int, str]
    scope_rules: Tuple[KeywordRule, ...]
    inheritance_cut: KeywordRule
    domain_shift: KeywordRule
    suspicious_providers: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "effect_rules": [r.to_dict() for r in self.effect_rules],
            "column_scopes": {str(k): v for k, v in self.column_scopes.items()},
            "scope_rules": [r.to_dict() for r in self.scope_rules],
            "inheritance_cut": self.inheritance_cut.to_dict(),
            "domain_shift": self.domain_shift.to_dict(),
            "suspicious_providers": list(self.suspicious_providers),
        }


def default_vocabulary() -> Vocabulary:
    return Vocabulary(
        effect_rules=(
            KeywordRule(EXPANSIVO, (r"sin\s+tope",)),
            KeywordRule(LIMITANTE, (r"tope", r"uf", r"ac2", r"veces", r"\b\d+(?:[.,]\d+)?\s*x\b")),
        ),
        column_scopes={5: TOPE_EVENTO, 6: TOPE_EVENTO, 7: TOPE_ANUAL_NFE},
        scope_rules=(
            KeywordRule(PORCENTAJE, (r"%",)),
            KeywordRule(PREFERENTE_MODAL, (r"\ba\.1\b", r"\ba\.2\b", r"institucional")),
            KeywordRule(
                PREFERENTE_RED,
                (r"cl[ií]nica", r"\bred\b", r"\buc\b", r"christus", r"d[aá]vila", r"vespucio"),
            ),
        ),
        inheritance_cut=KeywordRule("HERENCIA_CORTADA", (r"solo", r"libre\s+elecci"), require_all=True),
        domain_shift=KeywordRule(
            "CAMBIO_DOMINIO_FINANCIERO",
            (
                r"medic",
                r"material",
                r"traslado",
                r"pr[óo]tesis",
                r"[óo]rtesis",
                r"osteos[íi]ntesis",
                r"quimioterapia",
            ),
        ),
        suspicious_providers=("Santa María", "Tabancura", "Indisa"),
    )


def _rules(raw: Any, key: str) -> Tuple[KeywordRule, ...]:
    if not isinstance(raw, list):
        raise ValueError(f"Vocabulary key {key!r} must be a list of rules")
    return tuple(KeywordRule.from_dict(r) for r in raw)


def vocabulary_from_dict(raw: Mapping[str, Any], base: Optional[Vocabulary] = None) -> Vocabulary:
    """Overlay ``raw`` on ``base`` (default vocabulary); unknown keys are rejected."""
    vocabulary = base or default_vocabulary()
    updates: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in ("effect_rules", "scope_rules"):
            updates[key] = _rules(value, key)
        elif key in ("inheritance_cut", "domain_shift"):
            if not isinstance(value, Mapping):
                raise ValueError(f"Vocabulary key {key!r} must be a rule object")
            updates[key] = KeywordRule.from_dict(value)
        elif key == "column_scopes":
            if not isinstance(value, Mapping):
                raise ValueError("Vocabulary key 'column_scopes' must be an object")
            try:
                updates[key] = {int(col): str(scope) for col, scope in value.items()}
            except ValueError as exc:
                raise ValueError("column_scopes keys must be column numbers") from exc
        elif key == "suspicious_providers":
            if not isinstance(value, list):
                raise ValueError("Vocabulary key 'suspicious_providers' must be a list")
            updates[key] = tuple(str(p) for p in value)
        else:
            raise ValueError(f"Unknown vocabulary key {key!r}")
    return replace(vocabulary, **updates)


def load_vocabulary(path: Optional[str | Path]) -> Vocabulary:
    if path is None:
        return default_vocabulary()
    vocab_path = Path(path)
    try:
        raw = json.loads(vocab_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read vocabulary file {vocab_path}: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise ValueError(f"Vocabulary file {vocab_path} must contain a JSON object")
    logger.info("vocabulary_loaded", path=str(vocab_path), keys=sorted(raw))
    return vocabulary_from_dict(raw)


def first_match(rules: Sequence[KeywordRule], text: str) -> Optional[str]:
    for rule in rules:
        if rule.matches(text):
            return rule.label
    return None
