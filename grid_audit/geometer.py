"""Geometer: structural integrity checks over a spatial map in isolation.

Gates (each PASS / FAIL / WARN):
  atomic_columns                 column ids never encode a merge; x-ranges never overlap
  zone_type_validity             zone_type in the closed set
  min_confidence                 non-synthetic zones clear the geometry floor
  row_groups_present             informational, WARN only
  zone_application_completeness  REQUIRE rows are covered, NONE rows are not
  condition_flag_consistency     exception/provider text implies has_conditions
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import AppConfig
from .logging import get_logger
from .models import (
    FAIL,
    PASS,
    ROW_BAND,
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    WARN,
    ZONE_EXCLUSION,
    ZONE_TYPES,
    Column,
    QcWarning,
    Row,
    RowZonePolicy,
    SpatialMap,
    Zone,
)

logger = get_logger(__name__)

MERGED_COLUMN_PATTERN = re.compile(r"\+|C\d+_C\d+")
EXCEPTION_PATTERN = re.compile(r"excepto|salvo|solo\s+en", re.IGNORECASE)
PROVIDER_PATTERN = re.compile(r"Hosp\.|Cl[ií]nica|M[ée]dicos", re.IGNORECASE)

POLICY_REQUIRE = "REQUIRE"
POLICY_NONE = "NONE"
POLICY_ALLOW = "ALLOW"


@dataclass(slots=True)
class ZoneCoverageMetrics:
    expected_rows: int = 0
    covered_expected_rows: int = 0
    unexpected_zone_hits: int = 0
    coverage_rate: float = 1.0
    require_rows_present: bool = False
    require_rows_justified_absence: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expected_rows": self.expected_rows,
            "covered_expected_rows": self.covered_expected_rows,
            "unexpected_zone_hits": self.unexpected_zone_hits,
            "coverage_rate": self.coverage_rate,
            "require_rows_present": self.require_rows_present,
            "require_rows_justified_absence": self.require_rows_justified_absence,
        }


@dataclass(slots=True)
class GeometerReport:
    status: str
    warnings: List[QcWarning]
    gates: Dict[str, str]
    zone_coverage_metrics: ZoneCoverageMetrics
    zone_count: int = 0
    row_count: int = 0
    avg_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "warnings": [w.to_dict() for w in self.warnings],
            "qc_gates": dict(self.gates),
            "zone_coverage_metrics": self.zone_coverage_metrics.to_dict(),
            "metrics": {
                "zone_count": self.zone_count,
                "row_count": self.row_count,
                "avg_confidence": self.avg_confidence,
            },
        }


def is_exception_text(text: str) -> bool:
    return bool(EXCEPTION_PATTERN.search(text or "") or PROVIDER_PATTERN.search(text or ""))


def row_intersects_zone(row: Row, zone: Zone) -> bool:
    """ROW_BAND zones span every row; RECT_FALL zones need a y-interval overlap."""
    if zone.scope_mode == ROW_BAND:
        return True
    if row.y_range is None or zone.y_range is None:
        return False
    return row.y_range[0] < zone.y_range[1] and row.y_range[1] > zone.y_range[0]


def resolve_row_policy(
    row_id: str,
    policy: Optional[RowZonePolicy],
    warnings: Optional[List[QcWarning]] = None,
) -> str:
    if policy is None:
        return POLICY_ALLOW
    for pattern, rule_policy in policy.rules:
        try:
            if re.search(pattern, row_id):
                return rule_policy
        except re.error as exc:
            if warnings is not None:
                warnings.append(QcWarning(
                    type="INVALID_POLICY_RULE",
                    message=f'Row policy pattern "{pattern}" is not a valid expression: {exc}.',
                    severity=SEVERITY_WARNING,
                ))
    return policy.default


def _check_atomic_columns(columns: List[Column], eps: float, warnings: List[QcWarning]) -> bool:
    ok = True
    for col in columns:
        if MERGED_COLUMN_PATTERN.search(col.column_id):
            ok = False
            warnings.append(QcWarning(
                type="NON_ATOMIC_COLUMN",
                message=f'Column "{col.column_id}" encodes a merge of logical columns.',
            ))
    ranged = sorted((c for c in columns if c.x_range is not None), key=lambda c: c.x_range[0])
    for left, right in zip(ranged, ranged[1:]):
        if right.x_range[0] < left.x_range[1] - eps:
            ok = False
            warnings.append(QcWarning(
                type="COLUMN_OVERLAP",
                message=f'Columns "{left.column_id}" and "{right.column_id}" have overlapping x-ranges.',
            ))
    return ok


def _check_zone_completeness(spatial_map: SpatialMap, warnings: List[QcWarning]) -> tuple[str, ZoneCoverageMetrics]:
    if not spatial_map.rows:
        warnings.append(QcWarning(
            type="NO_ROWS",
            message="No rows defined in spatial map.",
            severity=SEVERITY_WARNING,
        ))
        return WARN, ZoneCoverageMetrics(
            coverage_rate=0.0,
            require_rows_present=False,
            require_rows_justified_absence=True,
        )

    gate = PASS
    metrics = ZoneCoverageMetrics()
    for row in spatial_map.rows:
        policy = resolve_row_policy(row.row_id, spatial_map.row_zone_policy, warnings)
        has_zone = any(
            z.zone_type != ZONE_EXCLUSION and row_intersects_zone(row, z)
            for z in spatial_map.zones
        )
        if policy == POLICY_REQUIRE:
            metrics.expected_rows += 1
            if has_zone:
                metrics.covered_expected_rows += 1
            else:
                gate = FAIL
                warnings.append(QcWarning(
                    type="MISSING_REQUIRED_ZONE",
                    message=f'Row "{row.row_id}" requires zone but none applies.',
                ))
        elif policy == POLICY_NONE and has_zone:
            metrics.unexpected_zone_hits += 1
            if gate != FAIL:
                gate = WARN
            warnings.append(QcWarning(
                type="UNEXPECTED_ZONE",
                message=f'Row "{row.row_id}" has unexpected zone application.',
                severity=SEVERITY_WARNING,
            ))

    if metrics.expected_rows:
        metrics.coverage_rate = metrics.covered_expected_rows / metrics.expected_rows
    metrics.require_rows_present = metrics.expected_rows > 0
    metrics.require_rows_justified_absence = metrics.expected_rows == 0
    return gate, metrics


def _average_confidence(spatial_map: SpatialMap) -> float:
    values = [c.confidence for c in spatial_map.columns]
    values.extend(z.geometry_confidence for z in spatial_map.zones)
    if not values:
        return 0.0
    return sum(values) / len(values)


def validate_spatial_map(spatial_map: SpatialMap, config: Optional[AppConfig] = None) -> GeometerReport:
    cfg = config or AppConfig()
    warnings: List[QcWarning] = []

    atomic = _check_atomic_columns(spatial_map.columns, cfg.bbox_epsilon, warnings)

    invalid_zones = [z for z in spatial_map.zones if z.zone_type not in ZONE_TYPES]
    if invalid_zones:
        ids = ", ".join(z.zone_id for z in invalid_zones)
        warnings.append(QcWarning(
            type="INVALID_ZONE_TYPE",
            message=f"Found {len(invalid_zones)} invalid zone types: {ids}",
        ))

    low_confidence = [
        z for z in spatial_map.zones
        if not z.synthetic_geometry and z.geometry_confidence < cfg.min_zone_confidence
    ]
    for zone in low_confidence:
        warnings.append(QcWarning(
            type="LOW_CONFIDENCE",
            message=(
                f'Zone "{zone.zone_id}" geometry confidence {zone.geometry_confidence:.2f} '
                f"is below {cfg.min_zone_confidence:.2f}."
            ),
        ))

    has_row_groups = bool(spatial_map.row_groups)
    if not has_row_groups:
        warnings.append(QcWarning(
            type="NO_ROW_GROUPS",
            message="Spatial map carries no row grouping metadata.",
            severity=SEVERITY_WARNING,
        ))

    completeness_gate, coverage = _check_zone_completeness(spatial_map, warnings)

    flags_ok = True
    for zone in spatial_map.zones:
        if is_exception_text(zone.contains_text) and not zone.has_conditions:
            flags_ok = False
            warnings.append(QcWarning(
                type="MISSING_CONDITION_FLAG",
                message=f'Zone "{zone.zone_id}" has exception/provider text but missing has_conditions: true.',
                severity=SEVERITY_ERROR,
            ))

    gates = {
        "atomic_columns": PASS if atomic else FAIL,
        "zone_type_validity": FAIL if invalid_zones else PASS,
        "min_confidence": FAIL if low_confidence else PASS,
        "row_groups_present": PASS if has_row_groups else WARN,
        "zone_application_completeness": completeness_gate,
        "condition_flag_consistency": PASS if flags_ok else FAIL,
    }
    values = gates.values()
    status = FAIL if FAIL in values else WARN if WARN in values else PASS

    report = GeometerReport(
        status=status,
        warnings=warnings,
        gates=gates,
        zone_coverage_metrics=coverage,
        zone_count=len(spatial_map.zones),
        row_count=len(spatial_map.rows),
        avg_confidence=_average_confidence(spatial_map),
    )
    logger.info(
        "geometer_done",
        status=status,
        zones=report.zone_count,
        rows=report.row_count,
        warnings=len(warnings),
    )
    return report
