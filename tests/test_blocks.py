import pytest

from grid_audit.blocks import (
    Amount,
    Block,
    NoCap,
    UnknownCap,
    cap_from_value,
    classify_block,
    classify_block_effect,
    detect_operators,
    infer_scope,
    parse_restriction,
)


@pytest.mark.parametrize(
    ("text", "effect"),
    [
        ("Sin tope", "EXPANSIVO"),
        ("Tope 2 veces AC2", "LIMITANTE"),
        ("10 UF por evento", "LIMITANTE"),
        ("1,5 x arancel", "LIMITANTE"),
        ("Hospitalario", "NEUTRO"),
    ],
)
def test_block_effect(text, effect):
    assert classify_block_effect(text) == effect


@pytest.mark.parametrize(
    ("column", "text", "scope"),
    [
        (5, "Tope 10 UF", "TOPE_EVENTO"),
        (6, "20 UF", "TOPE_EVENTO"),
        (7, "Tope anual 50 UF", "TOPE_ANUAL_NFE"),
        (5, "Solo cobertura libre elección", "PREFERENTE_RED"),
        (2, "80%", "PORCENTAJE"),
        (2, "A.2 Institucional", "PREFERENTE_MODAL"),
        (3, "Clínica Dávila", "PREFERENTE_RED"),
        (3, "Consulta", "FINANCIAL_DOMAIN"),
    ],
)
def test_scope_inference(column, text, scope):
    assert infer_scope(column, text) == scope


def _block(text, column=5, scope="TOPE_EVENTO"):
    return Block(block_id="B1", text=text, column=column, row_id="R1", scope=scope)


@pytest.mark.parametrize(
    ("text", "scope", "cap", "kind"),
    [
        ("Sin tope", "TOPE_EVENTO", NoCap(), "SIN_TOPE"),
        ("90% red", "PORCENTAJE", Amount("%", 90.0), "PORCENTAJE"),
        ("16,5 UF", "TOPE_ANUAL_NFE", Amount("UF", 16.5), "TOPE_UF"),
        ("1.2 veces AC2", "TOPE_ANUAL_NFE", Amount("AC2", 1.2), "TOPE_AC2"),
        ("2,0 x AC2", "TOPE_EVENTO", Amount("AC2", 2.0), "TOPE_AC2"),
        ("10", "TOPE_EVENTO", Amount("UF", 10.0), "TOPE_UF"),
        ("10", "TOPE_ANUAL_NFE", UnknownCap("10"), "OTRA"),
        ("Tope AC2", "TOPE_EVENTO", UnknownCap("Tope AC2"), "OTRA"),
    ],
)
def test_parse_restriction(text, scope, cap, kind):
    restriction = parse_restriction(_block(text, scope=scope), scope)

    assert restriction.cap == cap
    assert restriction.kind == kind
    assert restriction.source_block == "B1"


def test_operators_for_cut_and_domain_shift():
    block = classify_block({"id": "B7", "text": "Solo libre elección medicamentos", "column": 5, "row_id": "R1"})
    ops = detect_operators(block)

    assert block.scope == "PREFERENTE_RED"
    assert [op.type for op in ops] == ["HERENCIA_CORTADA", "CAMBIO_DOMINIO_FINANCIERO"]


def test_scoped_block_emits_restriction_operator():
    block = classify_block({"id": "B2", "text": "Tope 10 UF", "col": 5, "row_id": "R1"})
    (op,) = detect_operators(block)

    assert op.type == "TOPE_EVENTO"
    assert op.restriction.cap == Amount("UF", 10.0)


def test_classify_block_keeps_explicit_labels():
    block = classify_block({"id": "B3", "text": "texto", "column": "x", "effect": "LIMITANTE", "scope": "PORCENTAJE"})

    assert block.column == 0
    assert (block.effect, block.scope) == ("LIMITANTE", "PORCENTAJE")


def test_cap_from_value_variants():
    assert cap_from_value("SIN_TOPE") == NoCap()
    assert cap_from_value({"tipo": "UF", "valor": 10}) == Amount("UF", 10.0)
    assert cap_from_value({"unit": "ac2", "value": 1.5}) == Amount("AC2", 1.5)
    assert isinstance(cap_from_value({"tipo": "UF"}), UnknownCap)
    assert cap_from_value(None) is None
