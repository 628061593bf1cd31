"""Jurist: validate and repair draft assignments against the spatial map.

Stages run in a fixed order and never short-circuit each other:

  1. id atomicity and uniqueness
  2. row-id integrity
  3. bbox / column consistency
  4. unresolved overlaps
  5. condition atoms for exception zones (zone type upgrade to EXCLUSION)
  6. header-band promotion (policy gated, density capped)
  7. echo pointer -> pseudo-zone conversion (synthetic geometry capped)
  8. ghost rules, terminal evidence
  9. atom ambiguity

The only input rewrites are the zone type upgrade and the echo pointer
conversion; both are reported as INFO warnings.
"""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .config import AppConfig, HeaderBandPolicy
from .logging import get_logger
from .models import (
    CONDITIONAL,
    EXCLUDED,
    FAIL,
    NEEDS_REVIEW,
    PASS,
    ROW_BAND,
    SEVERITY_INFO,
    TEXT_DIRECT_CELL,
    TEXT_ECHO_HEADER,
    UNDETERMINED,
    ZONE_EXCLUSION,
    ZONE_GRAPHIC_RULE,
    ZONE_REFERENCE,
    ACTIVE,
    Assignment,
    Atom,
    Column,
    Pointer,
    QcWarning,
    Row,
    SpatialMap,
    Zone,
)

logger = get_logger(__name__)

MERGED_ID_PATTERN = re.compile(r"C\d+\+C\d+|_C\d+_C\d+|P\d+_R\d+|C2_C3")
EXCEPTION_PATTERN = re.compile(r"excepto|salvo", re.IGNORECASE)
UNIT_TOKEN_PATTERN = re.compile(r"\bVAM\b|\bUF\b|\bAC2\b|\bV\.A\.?|%", re.IGNORECASE)
TRIVIAL_UNITS = frozenset({"", "NONE", "UNKNOWN", "DESCONOCIDO", "SIN_TOPE"})
COPAY_ATOM_TYPE = "COPAGO"

PROMOTION_TAG = "ECHO_PROMOTED_TO_ROW_BAND"
CONVERSION_TAG = "ZONE_FROM_ECHO_PROMOTION"
PSEUDO_ZONE_ORIGIN = "TEXT_ECHO_HEADER_PROMOTION"
PSEUDO_ZONE_PREFIX = "ZONE_PROMOTED_HEADER_"
FALLBACK_X_RANGE = (0.4, 0.6)
ANCHORED_GEOMETRY_CONFIDENCE = 0.96
SYNTHETIC_GEOMETRY_CONFIDENCE = 0.80


@dataclass(slots=True)
class FallbackCursor:
    """Sequential y-band allocator for pseudo-zones that cannot be anchored to a row.

    One cursor belongs to one validation run; never share it across runs.
    """

    y: float = 0.3
    row_height: float = 0.02

    def advance(self) -> Tuple[float, float]:
        band = (round(self.y, 6), round(self.y + self.row_height, 6))
        self.y += self.row_height
        return band


@dataclass(slots=True)
class JuristMetrics:
    assignment_count: int = 0
    active_count: int = 0
    excluded_count: int = 0
    conditional_count: int = 0
    undetermined_count: int = 0
    promoted_echo_count: int = 0
    avg_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment_count": self.assignment_count,
            "active_count": self.active_count,
            "excluded_count": self.excluded_count,
            "conditional_count": self.conditional_count,
            "undetermined_count": self.undetermined_count,
            "promoted_echo_count": self.promoted_echo_count,
            "avg_confidence": self.avg_confidence,
        }


@dataclass(slots=True)
class JuristReport:
    status: str
    warnings: List[QcWarning]
    gates: Dict[str, str]
    metrics: JuristMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "warnings": [w.to_dict() for w in self.warnings],
            "qc_gates": dict(self.gates),
            "metrics": self.metrics.to_dict(),
        }


@dataclass(slots=True)
class JuristResult:
    report: JuristReport
    fixed_assignments: List[Assignment]
    pseudo_zones: List[Zone]
    spatial_map: SpatialMap = field(default_factory=SpatialMap)


# --------------------------------------------------------------------------
# 1-4: identity, rows, geometry, overlaps
# --------------------------------------------------------------------------

def check_atomic_ids(assignments: Sequence[Assignment], warnings: List[QcWarning]) -> bool:
    ok = True
    for a in assignments:
        if MERGED_ID_PATTERN.search(a.assignment_id) or MERGED_ID_PATTERN.search(a.column_id):
            ok = False
            warnings.append(QcWarning(
                type="NON_ATOMIC_ID",
                message=f'Assignment "{a.assignment_id}" contains merged/legacy pattern.',
            ))
    return ok


def check_duplicate_ids(assignments: Sequence[Assignment], warnings: List[QcWarning]) -> bool:
    ok = True
    seen: Set[str] = set()
    for a in assignments:
        if a.assignment_id in seen:
            ok = False
            warnings.append(QcWarning(
                type="DUPLICATE_ID",
                message=f'Assignment ID "{a.assignment_id}" is duplicated.',
            ))
        seen.add(a.assignment_id)
    return ok


def check_row_integrity(
    assignments: Sequence[Assignment], rows: Sequence[Row], warnings: List[QcWarning]
) -> bool:
    ok = True
    valid = {r.row_id for r in rows}
    for a in assignments:
        if a.row_id not in valid:
            ok = False
            warnings.append(QcWarning(
                type="ROW_INTEGRITY_FAIL",
                message=(
                    f'Assignment "{a.assignment_id}" references row_id "{a.row_id}" '
                    "which is not in spatial map."
                ),
            ))
    return ok


def check_column_bbox(
    assignment: Assignment, columns: Sequence[Column], eps: float = 0.01
) -> Tuple[bool, Optional[str]]:
    """Return ``(valid, correct_column_id)`` for a direct-cell pointer's bbox midpoint."""
    pointer = assignment.pointer
    if pointer.type != TEXT_DIRECT_CELL or pointer.bbox is None:
        return True, None

    x_mid = pointer.bbox.mid_x
    declared = next((c for c in columns if c.column_id == assignment.column_id), None)
    if declared is not None and declared.contains_x(x_mid, eps):
        return True, None

    correct = next((c for c in columns if c.contains_x(x_mid, eps)), None)
    return False, correct.column_id if correct else None


def check_bbox_consistency(
    assignments: Sequence[Assignment], columns: Sequence[Column], eps: float, warnings: List[QcWarning]
) -> bool:
    ok = True
    for a in assignments:
        valid, correct = check_column_bbox(a, columns, eps)
        if not valid:
            ok = False
            warnings.append(QcWarning(
                type="COLUMN_BBOX_MISMATCH",
                message=(
                    f'Assignment "{a.assignment_id}" points to {a.column_id} '
                    f"but BBox falls in {correct or 'UNKNOWN'}."
                ),
            ))
    return ok


def _active_cells(assignments: Sequence[Assignment]) -> "OrderedDict[Tuple[str, str], List[str]]":
    cells: "OrderedDict[Tuple[str, str], List[str]]" = OrderedDict()
    for a in assignments:
        if a.is_active:
            cells.setdefault((a.row_id, a.column_id), []).append(a.assignment_id)
    return cells


def check_overlaps(
    assignments: Sequence[Assignment],
    warnings: List[QcWarning],
    already_reported: Optional[Dict[Tuple[str, str], List[str]]] = None,
) -> Dict[Tuple[str, str], List[str]]:
    """Report every cell with more than one active assignment; returns the offending cells."""
    reported = already_reported or {}
    found: Dict[Tuple[str, str], List[str]] = {}
    for (row_id, column_id), ids in _active_cells(assignments).items():
        if len(ids) < 2 or reported.get((row_id, column_id)) == ids:
            continue
        found[(row_id, column_id)] = ids
        warnings.append(QcWarning(
            type="UNRESOLVED_OVERLAP",
            message=f"Cell {row_id}::{column_id} has {len(ids)} active assignments: {', '.join(ids)}.",
        ))
    return found


# --------------------------------------------------------------------------
# 5: exception zones
# --------------------------------------------------------------------------

def check_condition_atoms(
    assignments: Sequence[Assignment], zones: Sequence[Zone], warnings: List[QcWarning]
) -> Tuple[bool, List[Zone]]:
    """Upgrade exception-text zones to EXCLUSION and require ConditionAtoms on their assignments."""
    ok = True
    corrected: List[Zone] = []
    for zone in zones:
        if not EXCEPTION_PATTERN.search(zone.contains_text):
            corrected.append(zone)
            continue

        if zone.zone_type != ZONE_EXCLUSION:
            warnings.append(QcWarning(
                type="ZONE_TYPE_UPGRADED",
                message=f'Zone "{zone.zone_id}" upgraded to {ZONE_EXCLUSION} due to exception keywords.',
                severity=SEVERITY_INFO,
            ))
            logger.info("zone_type_upgraded", zone_id=zone.zone_id, previous=zone.zone_type)
            zone = replace(zone, zone_type=ZONE_EXCLUSION)
        corrected.append(zone)

        for a in assignments:
            if a.pointer.target_id == zone.zone_id and not a.has_condition_atom():
                ok = False
                warnings.append(QcWarning(
                    type="MISSING_CONDITION_ATOM",
                    message=f'Assignment "{a.assignment_id}" references exception zone but lacks ConditionAtom.',
                ))
    return ok, corrected


# --------------------------------------------------------------------------
# 6-7: header-band promotion and echo conversion
# --------------------------------------------------------------------------

def apply_header_band_promotion(
    assignments: Sequence[Assignment], policy: Optional[HeaderBandPolicy]
) -> Tuple[List[Assignment], int]:
    if policy is None or not policy.allow_row_band_promotion:
        return list(assignments), 0

    promoted = 0
    out: List[Assignment] = []
    for a in assignments:
        if (
            a.pointer.type == TEXT_ECHO_HEADER
            and a.row_confidence >= policy.min_geometry
            and a.assignment_confidence >= policy.min_text
        ):
            promoted += 1
            a = replace(a, status=ACTIVE, tags=[*a.tags, PROMOTION_TAG])
        out.append(a)
    return out, promoted


def convert_echo_pointers(
    assignments: Sequence[Assignment],
    columns: Sequence[Column],
    rows: Sequence[Row],
    cursor: FallbackCursor,
    warnings: List[QcWarning],
) -> Tuple[List[Zone], List[Assignment]]:
    """Rewrite echo pointers to ZONE_REFERENCE, backed by generated pseudo-zones."""
    pseudo_zones: "OrderedDict[str, Zone]" = OrderedDict()
    fixed: List[Assignment] = []
    rows_by_id = {r.row_id: r for r in rows}
    columns_by_id = {c.column_id: c for c in columns}

    for a in assignments:
        if a.pointer.type != TEXT_ECHO_HEADER and PROMOTION_TAG not in a.tags:
            fixed.append(a)
            continue

        zone_id = f"{PSEUDO_ZONE_PREFIX}{a.row_id}_{a.column_id}"
        if zone_id not in pseudo_zones:
            row = rows_by_id.get(a.row_id)
            column = columns_by_id.get(a.column_id)
            anchored = row is not None and row.y_range is not None
            y_range = row.y_range if anchored else cursor.advance()
            pseudo_zones[zone_id] = Zone(
                zone_id=zone_id,
                zone_type=ZONE_GRAPHIC_RULE,
                scope_mode=ROW_BAND,
                x_range=column.x_range if column and column.x_range else FALLBACK_X_RANGE,
                y_range=y_range,
                contains_text=a.pointer.raw_text,
                confidence={
                    "geometry": ANCHORED_GEOMETRY_CONFIDENCE if anchored else SYNTHETIC_GEOMETRY_CONFIDENCE,
                    "text": 0.97,
                    "scope": 0.95 if anchored else 0.75,
                },
                applies_to_columns=[a.column_id],
                synthetic_geometry=not anchored,
                origin=PSEUDO_ZONE_ORIGIN,
            )

        tags = [t for t in a.tags if t != PROMOTION_TAG] + [CONVERSION_TAG]
        fixed.append(replace(
            a,
            pointer=Pointer(type=ZONE_REFERENCE, raw_text=a.pointer.raw_text, target_id=zone_id),
            tags=tags,
        ))
        warnings.append(QcWarning(
            type="ECHO_POINTER_REWRITTEN",
            message=f'Assignment "{a.assignment_id}" echo pointer rewritten to {ZONE_REFERENCE} "{zone_id}".',
            severity=SEVERITY_INFO,
        ))
        logger.info("echo_pointer_rewritten", assignment_id=a.assignment_id, zone_id=zone_id)

    return list(pseudo_zones.values()), fixed


# --------------------------------------------------------------------------
# 8-9: evidence checks
# --------------------------------------------------------------------------

def check_no_ghost_rules(
    assignments: Sequence[Assignment], zones: Sequence[Zone], warnings: List[QcWarning]
) -> bool:
    ok = True
    known = {z.zone_id for z in zones}
    for a in assignments:
        if a.pointer.type != ZONE_REFERENCE:
            continue
        if a.pointer.target_id is None or a.pointer.target_id not in known:
            ok = False
            warnings.append(QcWarning(
                type="GHOST_RULE",
                message=f'Assignment "{a.assignment_id}" references unknown zone "{a.pointer.target_id}".',
            ))
    return ok


def check_no_echo_as_final_pointer(assignments: Sequence[Assignment], warnings: List[QcWarning]) -> bool:
    ok = True
    for a in assignments:
        if a.pointer.type == TEXT_ECHO_HEADER:
            ok = False
            warnings.append(QcWarning(
                type="ECHO_AS_FINAL_POINTER",
                message=f'Assignment "{a.assignment_id}" has {TEXT_ECHO_HEADER} as final pointer.',
            ))
    return ok


def check_terminal_evidence(assignments: Sequence[Assignment], warnings: List[QcWarning]) -> bool:
    ok = True
    for a in assignments:
        if a.is_active and a.pointer.type == ZONE_REFERENCE and not a.has_direct_text_atom():
            ok = False
            warnings.append(QcWarning(
                type="WEAK_EVIDENCE",
                message=f'Assignment "{a.assignment_id}" relies on {ZONE_REFERENCE} without TEXT_DIRECT atom.',
            ))
    return ok


def unit_tokens(text: str) -> Set[str]:
    tokens = set()
    for token in UNIT_TOKEN_PATTERN.findall(text or ""):
        token = token.upper()
        tokens.add("V.A." if token.startswith("V.A") else token)
    return tokens


def check_atom_ambiguity(assignments: Sequence[Assignment], warnings: List[QcWarning]) -> bool:
    ok = True
    for a in assignments:
        if not a.is_active:
            continue
        for atom in a.atoms:
            if not isinstance(atom, Atom):
                continue
            if atom.value is None and (atom.unit or "").upper() not in TRIVIAL_UNITS:
                ok = False
                warnings.append(QcWarning(
                    type="AMBIGUOUS_VALUE",
                    message=f'Assignment "{a.assignment_id}" has unit {atom.unit} but value is null.',
                ))
            if atom.type == COPAY_ATOM_TYPE and isinstance(atom.value, str) and len(unit_tokens(atom.value)) > 1:
                ok = False
                warnings.append(QcWarning(
                    type="UNRESOLVED_COPAGO",
                    message=f'Assignment "{a.assignment_id}" has unresolved mixed units in copago: "{atom.value}".',
                ))
    return ok


# --------------------------------------------------------------------------
# Entry point
# --------------------------------------------------------------------------

def _metrics(assignments: Sequence[Assignment], promoted: int) -> JuristMetrics:
    metrics = JuristMetrics(assignment_count=len(assignments), promoted_echo_count=promoted)
    total_confidence = 0.0
    for a in assignments:
        if a.is_active:
            metrics.active_count += 1
        elif a.status == EXCLUDED:
            metrics.excluded_count += 1
        elif a.status == CONDITIONAL:
            metrics.conditional_count += 1
        elif a.status == UNDETERMINED:
            metrics.undetermined_count += 1
        total_confidence += a.assignment_confidence
    if assignments:
        metrics.avg_confidence = total_confidence / len(assignments)
    return metrics


def _gate(ok: bool) -> str:
    return PASS if ok else FAIL


def validate_assignments(
    assignments: Sequence[Assignment],
    spatial_map: SpatialMap,
    header_band_policy: Optional[HeaderBandPolicy] = None,
    config: Optional[AppConfig] = None,
    cursor: Optional[FallbackCursor] = None,
) -> JuristResult:
    cfg = config or AppConfig()
    policy = header_band_policy if header_band_policy is not None else cfg.header_band_policy
    cursor = cursor or FallbackCursor()
    warnings: List[QcWarning] = []

    atomic_ok = check_atomic_ids(assignments, warnings)
    unique_ok = check_duplicate_ids(assignments, warnings)
    rows_ok = check_row_integrity(assignments, spatial_map.rows, warnings)
    bbox_ok = check_bbox_consistency(assignments, spatial_map.columns, cfg.bbox_epsilon, warnings)
    overlaps = check_overlaps(assignments, warnings)
    conditions_ok, zones = check_condition_atoms(assignments, spatial_map.zones, warnings)

    promoted_assignments, promoted_count = apply_header_band_promotion(assignments, policy)
    overlaps.update(check_overlaps(promoted_assignments, warnings, already_reported=overlaps))
    density_ok = promoted_count <= cfg.max_promoted_echo
    if not density_ok:
        warnings.append(QcWarning(
            type="HIGH_ECHO_DENSITY",
            message=(
                f"{promoted_count} promoted echo assignments exceeds threshold of "
                f"{cfg.max_promoted_echo}. Package PASS rejected."
            ),
        ))

    pseudo_zones, fixed = convert_echo_pointers(
        promoted_assignments, spatial_map.columns, spatial_map.rows, cursor, warnings
    )
    synthetic = sum(1 for z in pseudo_zones if z.synthetic_geometry)
    ratio = synthetic / len(fixed) if fixed else 0.0
    synthetic_ok = ratio <= cfg.max_synthetic_ratio
    if not synthetic_ok:
        warnings.append(QcWarning(
            type="HIGH_SYNTHETIC_DENSITY",
            message=(
                f"Synthetic geometry ratio ({ratio * 100:.0f}%) exceeds threshold of "
                f"{cfg.max_synthetic_ratio * 100:.0f}%."
            ),
        ))

    ghost_ok = check_no_ghost_rules(fixed, [*zones, *pseudo_zones], warnings)
    echo_ok = check_no_echo_as_final_pointer(fixed, warnings)
    terminal_ok = check_terminal_evidence(fixed, warnings)
    atoms_ok = check_atom_ambiguity(fixed, warnings)

    gates = {
        "atomic_assignment_ids": _gate(atomic_ok),
        "duplicate_assignment_ids": _gate(unique_ok),
        "row_id_integrity": _gate(rows_ok),
        "column_bbox_consistency": _gate(bbox_ok),
        "unresolved_overlaps": _gate(not overlaps),
        "condition_atoms_present": _gate(conditions_ok),
        "no_ghost_rules": _gate(ghost_ok),
        "no_echo_as_final_pointer": _gate(echo_ok),
        "promoted_echo_density": _gate(density_ok),
        "no_zone_reference_as_terminal_value": _gate(terminal_ok),
        "synthetic_geometry_density": _gate(synthetic_ok),
        "no_ambiguous_atoms": _gate(atoms_ok),
    }
    metrics = _metrics(fixed, promoted_count)
    status = NEEDS_REVIEW if FAIL in gates.values() or metrics.undetermined_count else PASS

    logger.info(
        "jurist_done",
        status=status,
        assignments=metrics.assignment_count,
        promoted=promoted_count,
        pseudo_zones=len(pseudo_zones),
        warnings=len(warnings),
    )
    return JuristResult(
        report=JuristReport(status=status, warnings=warnings, gates=gates, metrics=metrics),
        fixed_assignments=fixed,
        pseudo_zones=pseudo_zones,
        spatial_map=replace(spatial_map, zones=zones),
    )
