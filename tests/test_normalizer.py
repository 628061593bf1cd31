import pytest

from grid_audit.normalizer import normalize_all, normalize_atom


@pytest.mark.parametrize(
    ("raw", "value", "unit"),
    [
        ("16,0 UF", 16.0, "UF"),
        ("Sin Tope", "SIN_TOPE", "NONE"),
        ("60 VAM", 60.0, "VAM"),
        ("1,2 V.A.", 1.2, "V.A."),
        ("2.5 AC2", 2.5, "AC2"),
        ("90 %", 90.0, "%"),
        ("Solo cobertura libre elección", False, "EXCLUSION"),
    ],
)
def test_recognized_literal_forms(raw, value, unit):
    result = normalize_atom(raw)

    (atom,) = result.atoms
    assert atom.value == value
    assert atom.unit == unit
    assert atom.parse_confidence == 1.0
    assert atom.original_text == raw
    assert result.warnings == []


def test_partial_unit_is_rejected():
    result = normalize_atom("50 XP")

    (atom,) = result.atoms
    assert atom.unit == "UNKNOWN"
    assert atom.parse_confidence == 0.0
    assert atom.value == "50 XP"
    assert result.warnings[0].type == "UNPARSEABLE_ATOM"


def test_noisy_concatenation_is_not_read_as_nearest_unit():
    assert normalize_atom("50 UF aprox").atoms[0].unit == "UNKNOWN"


def test_renormalizing_original_text_is_idempotent():
    first = normalize_atom("  16,0 UF ").atoms[0]
    second = normalize_atom(first.original_text).atoms[0]

    assert first == second


def test_normalize_all_collects_atoms_and_warnings():
    result = normalize_all(["10 UF", "???", "Sin tope"], key="TOPE")

    assert [a.unit for a in result.atoms] == ["UF", "UNKNOWN", "NONE"]
    assert {a.key for a in result.atoms} == {"TOPE"}
    assert len(result.warnings) == 1
