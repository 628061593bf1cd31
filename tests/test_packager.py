from datetime import datetime, timezone

from conftest import direct_assignment, echo_assignment
from grid_audit.geometer import validate_spatial_map
from grid_audit.jurist import validate_assignments
from grid_audit.models import assignments_from_list
from grid_audit.packager import PRECEDENCE_LAW, package_audit_bundle, resolve_overall_status


def _bundle(spatial_map, raw_assignments):
    geo = validate_spatial_map(spatial_map)
    jurist = validate_assignments(assignments_from_list(raw_assignments), spatial_map)
    return package_audit_bundle(
        {"source_document": "plan.pdf", "page": 2},
        jurist.spatial_map,
        jurist.fixed_assignments,
        geo,
        jurist.report,
        jurist.pseudo_zones,
        now=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_overall_status_precedence():
    assert resolve_overall_status({"a": "PASS", "b": "FAIL"}, 0, 0) == "NEEDS_REVIEW"
    assert resolve_overall_status({"a": "PASS"}, 1, 0) == "NEEDS_REVIEW"
    assert resolve_overall_status({"a": "PASS"}, 0, 2) == "WARN"
    assert resolve_overall_status({"promoted_echo_density": "WARN"}, 0, 0) == "WARN"
    assert resolve_overall_status({"row_groups_present": "WARN"}, 0, 0) == "WARN"
    assert resolve_overall_status({"a": "PASS"}, 0, 0) == "PASS"


def test_clean_page_packages_as_pass(spatial_map):
    package = _bundle(spatial_map, [direct_assignment("A1", "R1", "COL_PREF_PCT", (0.32, 0.48))])
    doc = package.to_dict()

    assert package.overall_status == "PASS"
    assert doc["metadata"] == {
        "pipeline_version": "1.5.0",
        "spec_version": "v1.5.0-INDUSTRIAL-STRICT",
        "source_document": "plan.pdf",
        "page": 2,
        "timestamp": "2024-01-01T00:00:00+00:00",
    }
    assert doc["quality_metrics"]["laws_applied"] == PRECEDENCE_LAW
    assert doc["quality_metrics"]["promoted_zone_count"] == 0
    assert "unresolved_overlaps" in doc["qc_gates"]
    assert "zone_application_completeness" in doc["qc_gates"]


def test_pseudo_zones_are_folded_into_the_map(spatial_map):
    package = _bundle(spatial_map, [echo_assignment("E1", "R1", "COL_LE_PCT")])
    zone_ids = [z["zone_id"] for z in package.to_dict()["spatial_map"]["zones"]]

    assert zone_ids == ["Z_PREF", "ZONE_PROMOTED_HEADER_R1_COL_LE_PCT"]
    assert package.quality_metrics["promoted_zone_count"] == 1
    assert package.quality_metrics["conditional_count"] == 1
    assert package.overall_status == "WARN"
    assert all(a["pointer"]["type"] != "TEXT_ECHO_HEADER" for a in package.to_dict()["assignments"])


def test_atomic_columns_requires_both_reports(spatial_map):
    package = _bundle(spatial_map, [direct_assignment("A_C2_C3", "R1", "COL_PREF_PCT", (0.32, 0.48))])

    assert package.qc_gates["atomic_columns"] == "FAIL"
    assert package.overall_status == "NEEDS_REVIEW"


def test_warnings_from_both_reports_are_merged(map_doc, spatial_map):
    spatial_map.row_groups = []
    package = _bundle(spatial_map, [direct_assignment("A1", "R9", "COL_PREF_PCT", (0.32, 0.48))])
    types = {w.type for w in package.warnings}

    assert {"NO_ROW_GROUPS", "ROW_INTEGRITY_FAIL"} <= types
