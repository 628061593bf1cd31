"""Domain models for spatial maps, assignments and audit warnings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

ZONE_GRAPHIC_RULE = "ZONE_GRAPHIC_RULE"
ZONE_EXCLUSION = "ZONE_EXCLUSION"
ZONE_CUT = "ZONE_CUT"
ZONE_TYPES = frozenset({ZONE_GRAPHIC_RULE, ZONE_EXCLUSION, ZONE_CUT})
_ZONE_TYPE_ALIASES = {
    "GRAPHIC_RULE": ZONE_GRAPHIC_RULE,
    "EXCLUSION": ZONE_EXCLUSION,
    "CUT": ZONE_CUT,
}

ROW_BAND = "ROW_BAND"
RECT_FALL = "RECT_FALL"

TEXT_DIRECT_CELL = "TEXT_DIRECT_CELL"
TEXT_ECHO_HEADER = "TEXT_ECHO_HEADER"
ZONE_REFERENCE = "ZONE_REFERENCE"

ACTIVE = "ACTIVE"
ACTIVE_TEXT_DIRECT = "ACTIVE_TEXT_DIRECT"
EXCLUDED = "EXCLUDED"
CONDITIONAL = "CONDITIONAL"
UNDETERMINED = "UNDETERMINED"
CUT = "CUT"
ACTIVE_STATUSES = frozenset({ACTIVE, ACTIVE_TEXT_DIRECT})

PASS = "PASS"
FAIL = "FAIL"
WARN = "WARN"
NEEDS_REVIEW = "NEEDS_REVIEW"

SEVERITY_ERROR = "ERROR"
SEVERITY_WARNING = "WARNING"
SEVERITY_INFO = "INFO"

CONDITION_ATOM_TYPE = "CONDITION"
DIRECT_TEXT_KEY = "TEXT_DIRECT"


def _as_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_range(value: Any) -> Optional[Tuple[float, float]]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    try:
        lo, hi = float(value[0]), float(value[1])
    except (TypeError, ValueError):
        return None
    return (lo, hi)


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "t", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "f", "no", "n", "off"}:
            return False
    if isinstance(value, (int, float)):
        return value != 0
    return default


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def canonical_zone_type(value: Any) -> str:
    """Map accepted zone type spellings to the wire form; unknown values pass through."""
    text = _as_str(value)
    return _ZONE_TYPE_ALIASES.get(text, text)


@dataclass(slots=True)
class QcWarning:
    """A structured validation finding folded into a named gate."""

    type: str
    message: str
    severity: str = SEVERITY_ERROR

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "message": self.message, "severity": self.severity}


@dataclass(slots=True)
class Column:
    column_id: str
    x_range: Optional[Tuple[float, float]]
    confidence: float = 1.0
    label: Optional[str] = None

    def contains_x(self, x: float, eps: float = 0.0) -> bool:
        if self.x_range is None:
            return False
        return self.x_range[0] - eps <= x <= self.x_range[1] + eps

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Column":
        confidence = raw.get("confidence")
        if isinstance(confidence, Mapping):
            confidence = confidence.get("geometry")
        return cls(
            column_id=_as_str(_first(raw, "column_id", "id")),
            x_range=_as_range(raw.get("x_range")),
            confidence=_as_float(confidence, 1.0),
            label=raw.get("label"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "column_id": self.column_id,
            "x_range": list(self.x_range) if self.x_range else None,
            "confidence": self.confidence,
        }
        if self.label is not None:
            out["label"] = self.label
        return out


@dataclass(slots=True)
class Row:
    row_id: str
    y_range: Optional[Tuple[float, float]]
    raw_text: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Row":
        return cls(
            row_id=_as_str(_first(raw, "row_id", "id")),
            y_range=_as_range(raw.get("y_range")),
            raw_text=_as_str(raw.get("raw_text")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_id": self.row_id,
            "y_range": list(self.y_range) if self.y_range else None,
            "raw_text": self.raw_text,
        }


@dataclass(slots=True)
class Zone:
    zone_id: str
    zone_type: str
    scope_mode: str = RECT_FALL
    x_range: Optional[Tuple[float, float]] = None
    y_range: Optional[Tuple[float, float]] = None
    contains_text: str = ""
    confidence: Dict[str, float] = field(default_factory=dict)
    applies_to_columns: List[str] = field(default_factory=list)
    has_conditions: bool = False
    synthetic_geometry: bool = False
    origin: Optional[str] = None

    @property
    def geometry_confidence(self) -> float:
        return _as_float(self.confidence.get("geometry"), 0.0)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Zone":
        scope = _as_mapping(raw.get("geometric_scope"))
        confidence = {
            key: _as_float(value)
            for key, value in _as_mapping(raw.get("confidence")).items()
        }
        return cls(
            zone_id=_as_str(_first(raw, "zone_id", "id")),
            zone_type=canonical_zone_type(raw.get("zone_type")),
            scope_mode=_as_str(raw.get("scope_mode"), RECT_FALL),
            x_range=_as_range(scope.get("x")),
            y_range=_as_range(scope.get("y")),
            contains_text=_as_str(raw.get("contains_text")),
            confidence=confidence,
            applies_to_columns=[_as_str(c) for c in _as_list(raw.get("applies_to_columns"))],
            has_conditions=_as_bool(raw.get("has_conditions")),
            synthetic_geometry=_as_bool(raw.get("synthetic_geometry")),
            origin=raw.get("origin"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "zone_id": self.zone_id,
            "zone_type": self.zone_type,
            "scope_mode": self.scope_mode,
            "geometric_scope": {
                "x": list(self.x_range) if self.x_range else None,
                "y": list(self.y_range) if self.y_range else None,
            },
            "contains_text": self.contains_text,
            "confidence": dict(self.confidence),
            "applies_to_columns": list(self.applies_to_columns),
            "has_conditions": self.has_conditions,
            "synthetic_geometry": self.synthetic_geometry,
        }
        if self.origin is not None:
            out["origin"] = self.origin
        return out


@dataclass(slots=True)
class RowZonePolicy:
    """Per-row zone coverage policy: ordered (row-id regex, policy) rules plus a default."""

    rules: List[Tuple[str, str]] = field(default_factory=list)
    default: str = "ALLOW"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RowZonePolicy":
        rules: List[Tuple[str, str]] = []
        for rule in _as_list(raw.get("rules")):
            rule = _as_mapping(rule)
            pattern = _as_mapping(rule.get("match")).get("row_id")
            if pattern is None or rule.get("policy") is None:
                continue
            rules.append((str(pattern), str(rule["policy"]).upper()))
        return cls(rules=rules, default=_as_str(raw.get("default"), "ALLOW").upper())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rules": [{"match": {"row_id": pattern}, "policy": policy} for pattern, policy in self.rules],
            "default": self.default,
        }


@dataclass(slots=True)
class SpatialMap:
    columns: List[Column] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)
    zones: List[Zone] = field(default_factory=list)
    row_groups: List[Any] = field(default_factory=list)
    row_zone_policy: Optional[RowZonePolicy] = None
    page_metadata: Dict[str, Any] = field(default_factory=dict)

    def row(self, row_id: str) -> Optional[Row]:
        return next((r for r in self.rows if r.row_id == row_id), None)

    def column(self, column_id: str) -> Optional[Column]:
        return next((c for c in self.columns if c.column_id == column_id), None)

    def zone(self, zone_id: str) -> Optional[Zone]:
        return next((z for z in self.zones if z.zone_id == zone_id), None)

    @classmethod
    def from_dict(cls, raw: Any) -> "SpatialMap":
        raw = _as_mapping(raw)
        policy = raw.get("row_zone_policy")
        return cls(
            columns=[Column.from_dict(c) for c in _as_list(raw.get("columns")) if isinstance(c, Mapping)],
            rows=[Row.from_dict(r) for r in _as_list(raw.get("rows")) if isinstance(r, Mapping)],
            zones=[Zone.from_dict(z) for z in _as_list(raw.get("zones")) if isinstance(z, Mapping)],
            row_groups=_as_list(raw.get("row_groups")),
            row_zone_policy=RowZonePolicy.from_dict(policy) if isinstance(policy, Mapping) else None,
            page_metadata=dict(_as_mapping(raw.get("page_metadata"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "page_metadata": dict(self.page_metadata),
            "columns": [c.to_dict() for c in self.columns],
            "rows": [r.to_dict() for r in self.rows],
            "zones": [z.to_dict() for z in self.zones],
            "row_groups": list(self.row_groups),
        }
        if self.row_zone_policy is not None:
            out["row_zone_policy"] = self.row_zone_policy.to_dict()
        return out


@dataclass(slots=True)
class BBox:
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def mid_x(self) -> float:
        return (self.x0 + self.x1) / 2

    @classmethod
    def from_value(cls, value: Any) -> Optional["BBox"]:
        """Accept ``[x0, y0, x1, y1]`` or ``{"x": [x0, x1], "y": [y0, y1]}``."""
        if isinstance(value, Mapping):
            xs, ys = _as_range(value.get("x")), _as_range(value.get("y"))
            if xs is None:
                return None
            ys = ys or (0.0, 0.0)
            return cls(xs[0], ys[0], xs[1], ys[1])
        if isinstance(value, (list, tuple)) and len(value) == 4:
            try:
                return cls(*(float(v) for v in value))
            except (TypeError, ValueError):
                return None
        return None

    def to_dict(self) -> Dict[str, List[float]]:
        return {"x": [self.x0, self.x1], "y": [self.y0, self.y1]}


@dataclass(slots=True)
class Pointer:
    type: str
    raw_text: str = ""
    target_id: Optional[str] = None
    bbox: Optional[BBox] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Pointer":
        raw = _as_mapping(raw)
        target = _first(raw, "target_id", "target_zone_id")
        return cls(
            type=_as_str(raw.get("type")),
            raw_text=_as_str(raw.get("raw_text")),
            target_id=str(target) if target is not None else None,
            bbox=BBox.from_value(raw.get("bbox")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "raw_text": self.raw_text}
        if self.target_id is not None:
            out["target_id"] = self.target_id
        if self.bbox is not None:
            out["bbox"] = self.bbox.to_dict()
        return out


@dataclass(slots=True)
class Atom:
    """Typed value parsed from evidence text. ``value`` may be a number, text, bool or ``"SIN_TOPE"``."""

    type: str
    key: str
    value: Any
    unit: Optional[str] = None
    original_text: str = ""
    parse_confidence: float = 1.0

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Atom":
        unit = raw.get("unit")
        return cls(
            type=_as_str(raw.get("type")),
            key=_as_str(raw.get("key")),
            value=raw.get("value"),
            unit=str(unit) if unit is not None else None,
            original_text=_as_str(raw.get("original_text")),
            parse_confidence=_as_float(raw.get("parse_confidence"), 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "key": self.key,
            "value": self.value,
            "unit": self.unit,
            "original_text": self.original_text,
            "parse_confidence": self.parse_confidence,
        }


@dataclass(slots=True)
class ConditionAtom:
    kind: str
    raw_text: str
    providers: List[str] = field(default_factory=list)

    type = CONDITION_ATOM_TYPE

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ConditionAtom":
        return cls(
            kind=_as_str(raw.get("kind"), "OTHER"),
            raw_text=_as_str(raw.get("raw_text")),
            providers=[_as_str(p) for p in _as_list(_first(raw, "prestadores", "providers"))],
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": CONDITION_ATOM_TYPE, "kind": self.kind, "raw_text": self.raw_text}
        if self.providers:
            out["prestadores"] = list(self.providers)
        return out


AnyAtom = Union[Atom, ConditionAtom]


def atom_from_dict(raw: Mapping[str, Any]) -> AnyAtom:
    if raw.get("type") == CONDITION_ATOM_TYPE:
        return ConditionAtom.from_dict(raw)
    return Atom.from_dict(raw)


@dataclass(slots=True)
class Assignment:
    assignment_id: str
    row_id: str
    column_id: str
    pointer: Pointer
    atoms: List[AnyAtom] = field(default_factory=list)
    status: str = UNDETERMINED
    row_confidence: float = 0.0
    assignment_confidence: float = 0.0
    tags: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def has_condition_atom(self) -> bool:
        return any(isinstance(a, ConditionAtom) for a in self.atoms)

    def has_direct_text_atom(self) -> bool:
        return any(isinstance(a, Atom) and a.key == DIRECT_TEXT_KEY for a in self.atoms)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Assignment":
        confidence = _as_mapping(raw.get("confidence"))
        return cls(
            assignment_id=_as_str(_first(raw, "assignment_id", "id")),
            row_id=_as_str(raw.get("row_id")),
            column_id=_as_str(raw.get("column_id")),
            pointer=Pointer.from_dict(raw.get("pointer")),
            atoms=[atom_from_dict(a) for a in _as_list(raw.get("atoms")) if isinstance(a, Mapping)],
            status=_as_str(raw.get("status"), UNDETERMINED),
            row_confidence=_as_float(_first(confidence, "row_confidence", "row")),
            assignment_confidence=_as_float(_first(confidence, "assignment_confidence", "assignment")),
            tags=[_as_str(t) for t in _as_list(raw.get("tags"))],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_id": self.assignment_id,
            "row_id": self.row_id,
            "column_id": self.column_id,
            "pointer": self.pointer.to_dict(),
            "atoms": [a.to_dict() for a in self.atoms],
            "status": self.status,
            "confidence": {
                "row_confidence": self.row_confidence,
                "assignment_confidence": self.assignment_confidence,
            },
            "tags": list(self.tags),
        }


def assignments_from_list(raw: Any) -> List[Assignment]:
    """Parse an assignments document; accepts a bare list or ``{"assignments": [...]}``."""
    if isinstance(raw, Mapping):
        raw = raw.get("assignments")
    return [Assignment.from_dict(a) for a in _as_list(raw) if isinstance(a, Mapping)]
