"""Bundle the Geometer and Jurist outputs into one audit package."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import AppConfig
from .geometer import GeometerReport
from .jurist import JuristReport
from .logging import get_logger
from .models import FAIL, NEEDS_REVIEW, PASS, WARN, Assignment, QcWarning, SpatialMap, Zone

logger = get_logger(__name__)

PRECEDENCE_LAW = (
    "EXCLUSION > ACTIVE_TEXT_DIRECT > ZONE_GRAPHIC_RULE(ROW_BAND) > ZONE_GRAPHIC_RULE(RECT_FALL)"
)


@dataclass(slots=True)
class AuditPackage:
    metadata: Dict[str, Any]
    spatial_map: SpatialMap
    assignments: List[Assignment]
    warnings: List[QcWarning]
    qc_gates: Dict[str, str]
    zone_coverage_metrics: Dict[str, Any]
    quality_metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def overall_status(self) -> str:
        return self.quality_metrics.get("overall_status", NEEDS_REVIEW)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "spatial_map": self.spatial_map.to_dict(),
            "assignments": [a.to_dict() for a in self.assignments],
            "warnings": [w.to_dict() for w in self.warnings],
            "qc_gates": dict(self.qc_gates),
            "zone_coverage_metrics": dict(self.zone_coverage_metrics),
            "quality_metrics": dict(self.quality_metrics),
        }


def resolve_overall_status(gates: Mapping[str, str], undetermined_count: int, conditional_count: int) -> str:
    if FAIL in gates.values() or undetermined_count > 0:
        return NEEDS_REVIEW
    if gates.get("promoted_echo_density") == WARN or conditional_count > 0:
        return WARN
    return WARN if WARN in gates.values() else PASS


def merge_gates(geo_report: GeometerReport, jur_report: JuristReport) -> Dict[str, str]:
    gates = dict(geo_report.gates)
    gates.update(jur_report.gates)
    atomic = (
        geo_report.gates.get("atomic_columns") == PASS
        and jur_report.gates.get("atomic_assignment_ids") == PASS
    )
    gates["atomic_columns"] = PASS if atomic else FAIL
    return gates


def package_audit_bundle(
    metadata: Mapping[str, Any],
    spatial_map: SpatialMap,
    assignments: Sequence[Assignment],
    geo_report: GeometerReport,
    jur_report: JuristReport,
    pseudo_zones: Sequence[Zone],
    config: Optional[AppConfig] = None,
    now: Optional[datetime] = None,
) -> AuditPackage:
    cfg = config or AppConfig()
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    gates = merge_gates(geo_report, jur_report)
    metrics = jur_report.metrics
    status = resolve_overall_status(gates, metrics.undetermined_count, metrics.conditional_count)

    package = AuditPackage(
        metadata={
            "pipeline_version": cfg.pipeline_version,
            "spec_version": cfg.spec_version,
            "source_document": metadata.get("source_document"),
            "page": metadata.get("page"),
            "timestamp": timestamp,
        },
        spatial_map=replace(spatial_map, zones=[*spatial_map.zones, *pseudo_zones]),
        assignments=list(assignments),
        warnings=[*geo_report.warnings, *jur_report.warnings],
        qc_gates=gates,
        zone_coverage_metrics=geo_report.zone_coverage_metrics.to_dict(),
        quality_metrics={
            "laws_applied": PRECEDENCE_LAW,
            "overall_status": status,
            "avg_confidence": (geo_report.avg_confidence + metrics.avg_confidence) / 2,
            "undetermined_count": metrics.undetermined_count,
            "conditional_count": metrics.conditional_count,
            "promoted_echo_count": metrics.promoted_echo_count,
            "promoted_zone_count": len(pseudo_zones),
        },
    )
    logger.info(
        "audit_packaged",
        source_document=package.metadata["source_document"],
        page=package.metadata["page"],
        overall_status=status,
    )
    return package
