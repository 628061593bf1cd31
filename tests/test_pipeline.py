import pytest

from conftest import direct_assignment, echo_assignment
from grid_audit.config import HeaderBandPolicy
from grid_audit.pipeline import audit_page, canonicalize_document, load_json


def test_audit_page_end_to_end(map_doc):
    assignments = {
        "assignments": [
            direct_assignment("A1", "R1", "COL_PREF_PCT", (0.32, 0.48)),
            echo_assignment("E1", "R2", "COL_LE_PCT"),
        ]
    }
    package = audit_page(
        map_doc,
        assignments,
        source_document="plan.pdf",
        page=4,
        header_band_policy=HeaderBandPolicy(allow_row_band_promotion=True),
    )
    doc = package.to_dict()

    assert doc["metadata"]["page"] == 4
    assert doc["quality_metrics"]["promoted_echo_count"] == 1
    assert doc["quality_metrics"]["overall_status"] == "PASS"
    assert {a["pointer"]["type"] for a in doc["assignments"]} == {"TEXT_DIRECT_CELL", "ZONE_REFERENCE"}


def test_audit_page_tolerates_garbage():
    package = audit_page("not a map", 42)

    assert package.assignments == []
    assert package.overall_status in {"WARN", "NEEDS_REVIEW"}


def test_canonicalize_document_runs_checker():
    blocks = {"blocks": [
        {"id": "B1", "row_id": "R1", "text": "Tope 10 UF", "column": 5},
        {"id": "B2", "row_id": "R1", "text": "Solo libre elección", "column": 3},
    ]}
    options = {"rows": [{
        "row_id": "R1",
        "name": "Dia cama",
        "options": [
            {"id": "P80", "modalidad": "preferente", "porcentaje": 80, "prestadores": ["Clínica A"]},
            {"id": "P90", "modalidad": "preferente", "porcentaje": 90, "prestadores": ["Clínica A"]},
        ],
    }]}
    result = canonicalize_document(blocks, options)

    (row,) = result["rows"]
    assert row["inheritance_cut"] is True
    assert row["active_options"] == []
    assert [v["code"] for v in row["violations"]] == ["E1_PROVIDER_MIXING"]
    assert result["summary"] == {"rows": 1, "blocks": 2, "violations": 1}
    assert result["blocks"][0]["effect"] == "LIMITANTE"


def test_load_json_reports_unreadable_files(tmp_path):
    with pytest.raises(ValueError):
        load_json(tmp_path / "absent.json")
