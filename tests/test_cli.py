import json

from typer.testing import CliRunner

from conftest import direct_assignment, echo_assignment
from grid_audit.cli import app

runner = CliRunner()


def _write(path, document):
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def test_audit_writes_package(tmp_path, map_doc):
    map_path = _write(tmp_path / "map.json", map_doc)
    assignments_path = _write(tmp_path / "assignments.json", [
        direct_assignment("A1", "R1", "COL_PREF_PCT", (0.32, 0.48)),
        echo_assignment("E1", "R2", "COL_LE_PCT"),
    ])
    out = tmp_path / "out" / "page.json"

    result = runner.invoke(app, [
        "audit", "--map", str(map_path), "--assignments", str(assignments_path),
        "--out", str(out), "--page", "7", "--promote",
    ])

    assert result.exit_code == 0, result.output
    package = json.loads(out.read_text(encoding="utf-8"))
    assert package["metadata"]["source_document"] == "map.json"
    assert package["metadata"]["page"] == 7
    assert package["quality_metrics"]["promoted_zone_count"] == 1


def test_audit_rejects_unreadable_input(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")

    result = runner.invoke(app, ["audit", "--map", str(broken), "--assignments", str(broken)])

    assert result.exit_code == 2


def test_canonize_writes_rows(tmp_path):
    blocks = _write(tmp_path / "blocks.json", {"blocks": [
        {"id": "B1", "row_id": "R1", "text": "Tope 10 UF", "column": 5},
    ]})
    options = _write(tmp_path / "options.json", {"rows": [{
        "row_id": "R1",
        "options": [{"id": "LE", "modalidad": "libre_eleccion", "porcentaje": 60,
                     "tope_evento": {"tipo": "UF", "valor": 5}}],
    }]})
    out = tmp_path / "rows.json"

    result = runner.invoke(app, ["canonize", "--blocks", str(blocks), "--options", str(options), "--out", str(out)])

    assert result.exit_code == 0, result.output
    document = json.loads(out.read_text(encoding="utf-8"))
    assert document["rows"][0]["active_options"] == []
    assert document["summary"]["rows"] == 1


def test_normalize_prints_atoms():
    result = runner.invoke(app, ["normalize", "16,0 UF", "Sin Tope"])

    assert result.exit_code == 0, result.output
    document = json.loads(result.stdout)
    assert [a["unit"] for a in document["atoms"]] == ["UF", "NONE"]


def test_regress_exit_codes(tmp_path):
    golden = tmp_path / "golden"
    golden.mkdir()
    _write(golden / "index.json", {"entries": []})

    assert runner.invoke(app, ["regress", "--golden", str(golden), "--actual", str(tmp_path)]).exit_code == 0
    missing = runner.invoke(app, ["regress", "--golden", str(tmp_path / "nope"), "--actual", str(tmp_path)])
    assert missing.exit_code == 2

    _write(golden / "g1_map.json", {"columns": []})
    _write(golden / "g1_assignments.json", [])
    _write(golden / "index.json", {"entries": [
        {"id": "g1", "spatial_map_file": "g1_map.json", "assignments_file": "g1_assignments.json"},
    ]})
    failed = runner.invoke(app, ["regress", "--golden", str(golden), "--actual", str(tmp_path)])
    assert failed.exit_code == 1
