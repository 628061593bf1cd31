"""Block classification, restriction parsing and semantic operator detection."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import _as_str
from .numeral import NUMBER, find_number, parse_number
from .vocabulary import (
    FINANCIAL_DOMAIN,
    NEUTRO,
    PREFERENTE_RED,
    TOPE_EVENTO,
    Vocabulary,
    default_vocabulary,
    first_match,
)

HERENCIA_CORTADA = "HERENCIA_CORTADA"
CAMBIO_DOMINIO_FINANCIERO = "CAMBIO_DOMINIO_FINANCIERO"
RESTRICTION_SCOPES = ("TOPE_EVENTO", "TOPE_ANUAL_NFE", "PORCENTAJE")

_NO_CAP = re.compile(r"sin\s+tope", re.IGNORECASE)
_PERCENT = re.compile(r"(\d{1,3})\s*%")
_UF = re.compile(rf"({NUMBER})\s*uf", re.IGNORECASE)
_AC2 = re.compile(rf"({NUMBER})\s*(?:x|veces)?\s*ac2", re.IGNORECASE)
_AC2_TOKEN = re.compile(r"ac2", re.IGNORECASE)


# --------------------------------------------------------------------------
# Cap variant
# --------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class NoCap:
    def to_dict(self) -> Dict[str, Any]:
        return {"tipo": "SIN_TOPE"}


@dataclass(slots=True, frozen=True)
class Amount:
    unit: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"tipo": self.unit, "valor": self.value}


@dataclass(slots=True, frozen=True)
class UnknownCap:
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tipo": "DESCONOCIDO", "raw": self.raw}


Cap = Union[NoCap, Amount, UnknownCap]


def cap_from_value(value: Any) -> Optional[Cap]:
    """Read a cap from option documents: ``"SIN_TOPE"``, ``{"tipo", "valor"}`` or ``{"unit", "value"}``."""
    if value is None:
        return None
    if isinstance(value, str):
        if _NO_CAP.search(value) or value.upper() == "SIN_TOPE":
            return NoCap()
        return UnknownCap(value)
    if isinstance(value, Mapping):
        unit = _as_str(value.get("tipo", value.get("unit"))).upper()
        amount = value.get("valor", value.get("value"))
        if unit == "SIN_TOPE":
            return NoCap()
        if unit and isinstance(amount, (int, float)) and not isinstance(amount, bool):
            return Amount(unit, float(amount))
        return UnknownCap(_as_str(value.get("raw")) or str(dict(value)))
    return UnknownCap(str(value))


# --------------------------------------------------------------------------
# Blocks
# --------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class Block:
    block_id: str
    text: str
    column: int
    row_id: str
    segment_id: str = ""
    effect: str = NEUTRO
    scope: str = FINANCIAL_DOMAIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.block_id,
            "text": self.text,
            "column": self.column,
            "row_id": self.row_id,
            "segment_id": self.segment_id,
            "effect": self.effect,
            "scope": self.scope,
        }


def classify_block_effect(text: str, vocabulary: Optional[Vocabulary] = None) -> str:
    vocab = vocabulary or default_vocabulary()
    return first_match(vocab.effect_rules, text) or NEUTRO


def infer_scope(column: int, text: str, vocabulary: Optional[Vocabulary] = None) -> str:
    """Column table first, then text rules; an inheritance-cut phrase always scopes the preferente network."""
    vocab = vocabulary or default_vocabulary()
    if vocab.inheritance_cut.matches(text):
        return PREFERENTE_RED
    if column in vocab.column_scopes:
        return vocab.column_scopes[column]
    return first_match(vocab.scope_rules, text) or FINANCIAL_DOMAIN


def classify_block(raw: Mapping[str, Any], vocabulary: Optional[Vocabulary] = None) -> Block:
    """Build a Block from a document entry, classifying effect and scope unless given."""
    text = _as_str(raw.get("text"))
    try:
        column = int(raw.get("column", raw.get("col", 0)))
    except (TypeError, ValueError):
        column = 0
    return Block(
        block_id=_as_str(raw.get("id", raw.get("block_id"))),
        text=text,
        column=column,
        row_id=_as_str(raw.get("row_id", raw.get("rowId"))),
        segment_id=_as_str(raw.get("segment_id", raw.get("segmentId"))),
        effect=_as_str(raw.get("effect")) or classify_block_effect(text, vocabulary),
        scope=_as_str(raw.get("scope")) or infer_scope(column, text, vocabulary),
    )


# --------------------------------------------------------------------------
# Restrictions and operators
# --------------------------------------------------------------------------

@dataclass(slots=True, frozen=True)
class Restriction:
    scope: str
    cap: Cap
    raw: str
    source_block: str
    domain: Optional[str] = None

    @property
    def kind(self) -> str:
        if isinstance(self.cap, NoCap):
            return "SIN_TOPE"
        if isinstance(self.cap, Amount):
            return {"%": "PORCENTAJE", "UF": "TOPE_UF", "AC2": "TOPE_AC2"}.get(self.cap.unit, "OTRA")
        return "OTRA"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"scope": self.scope, "kind": self.kind}
        if isinstance(self.cap, Amount):
            out["value"] = self.cap.value
        out.update({"raw": self.raw, "source_block": self.source_block, "domain": self.domain})
        return out


def parse_restriction(block: Block, scope: str) -> Restriction:
    text = block.text

    def build(cap: Cap) -> Restriction:
        return Restriction(scope=scope, cap=cap, raw=text, source_block=block.block_id)

    if _NO_CAP.search(text):
        return build(NoCap())
    match = _PERCENT.search(text)
    if match:
        return build(Amount("%", float(match.group(1))))
    match = _UF.search(text)
    if match:
        return build(Amount("UF", parse_number(match.group(1))))
    match = _AC2.search(text)
    if match:
        return build(Amount("AC2", parse_number(match.group(1))))
    if scope == TOPE_EVENTO:
        value = find_number(_AC2_TOKEN.sub("", text))
        if value is not None:
            return build(Amount("UF", value))
    return build(UnknownCap(text))


@dataclass(slots=True, frozen=True)
class Operator:
    type: str
    source_block: str
    restriction: Optional[Restriction] = None


def detect_operators(block: Block, vocabulary: Optional[Vocabulary] = None) -> List[Operator]:
    vocab = vocabulary or default_vocabulary()
    ops: List[Operator] = []
    if vocab.inheritance_cut.matches(block.text):
        ops.append(Operator(HERENCIA_CORTADA, block.block_id))
    if vocab.domain_shift.matches(block.text):
        ops.append(Operator(CAMBIO_DOMINIO_FINANCIERO, block.block_id))
    if block.scope in RESTRICTION_SCOPES:
        ops.append(Operator(block.scope, block.block_id, parse_restriction(block, block.scope)))
    return ops
