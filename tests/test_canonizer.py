import pytest

from grid_audit.blocks import classify_block, detect_operators
from grid_audit.canonizer import (
    LineState,
    OptionGraph,
    apply_operators,
    canonicalize_row,
    canonicalize_table,
    initial_state,
    reinterpret_block,
)


@pytest.fixture()
def graph():
    return OptionGraph.from_dict({
        "row_id": "R1",
        "name": "Dia cama",
        "options": [
            {"id": "PREF_80", "modalidad": "preferente", "porcentaje": 80, "prestadores": ["Clínica A"],
             "tope_evento": {"tipo": "UF", "valor": 10}},
            {"id": "PREF_90", "modalidad": "preferente", "porcentaje": 90, "prestadores": ["Clínica B"]},
            {"id": "LE", "modalidad": "libre_eleccion", "porcentaje": 60,
             "tope_evento": {"tipo": "UF", "valor": 5}},
        ],
    })


def _blocks(*entries):
    return [
        classify_block({"id": f"B{i}", "row_id": "R1", "text": text, "column": column})
        for i, (text, column) in enumerate(entries, start=1)
    ]


def _fold(graph, blocks):
    states = [initial_state(graph)]
    for block in blocks:
        ops = detect_operators(block)
        state = apply_operators(states[-1], ops)
        states.append(reinterpret_block(block, state, graph, ops))
    return states


def test_option_scopes_default_from_fields(graph):
    assert graph.get("PREF_80").scopes == {"PREFERENTE_RED", "PORCENTAJE", "TOPE_EVENTO"}
    assert graph.get("PREF_90").scopes == {"PREFERENTE_RED", "PORCENTAJE"}
    assert graph.get("LE").scopes == {"PORCENTAJE", "TOPE_EVENTO"}


def test_limiting_block_moves_intersecting_options_to_latent(graph):
    snapshot = canonicalize_row(graph, _blocks(("Tope 10 UF", 5)))

    assert snapshot.active_options == ["PREF_90"]
    assert [(lo.option_id, lo.reason) for lo in snapshot.latent_options] == [
        ("PREF_80", "LIMITANTE_TOPE"),
        ("LE", "LIMITANTE_TOPE"),
    ]
    assert snapshot.latent_options[0].scope == "TOPE_EVENTO"
    assert snapshot.latent_options[0].source_block == "B1"


def test_expansive_block_reactivates_limited_options(graph):
    snapshot = canonicalize_row(graph, _blocks(("Tope 10 UF", 5), ("Sin tope", 6)))

    assert set(snapshot.active_options) == {"PREF_80", "PREF_90", "LE"}
    assert snapshot.latent_options == []


def test_inheritance_cut_is_never_undone_by_expansion(graph):
    snapshot = canonicalize_row(
        graph,
        _blocks(("Solo cobertura libre elección", 3), ("Sin tope en red Clínica", 3)),
    )

    assert snapshot.inheritance_cut is True
    assert snapshot.active_options == ["LE"]
    assert {lo.option_id for lo in snapshot.latent_options} == {"PREF_80", "PREF_90"}
    assert {lo.reason for lo in snapshot.latent_options} == {"HERENCIA_CORTADA"}


def test_cut_options_survive_later_event_cap_reexpansion(graph):
    snapshot = canonicalize_row(
        graph,
        _blocks(("Tope 10 UF", 5), ("Solo libre elección", 3), ("Sin tope", 5)),
    )
    reasons = {lo.option_id: lo.reason for lo in snapshot.latent_options}

    assert reasons == {"PREF_80": "HERENCIA_CORTADA", "PREF_90": "HERENCIA_CORTADA"}
    assert snapshot.active_options == ["LE"]


def test_cut_rewrites_reason_of_already_limited_network_options(graph):
    states = _fold(graph, _blocks(("Tope 10 UF", 5), ("Solo libre elección", 3)))
    reasons = {lo.option_id: lo.reason for lo in states[-1].latent_options}

    assert reasons == {"PREF_80": "HERENCIA_CORTADA", "PREF_90": "HERENCIA_CORTADA", "LE": "LIMITANTE_TOPE"}
    assert [lo.source_block for lo in states[-1].latent_options if lo.option_id == "PREF_80"] == ["B2"]


def test_option_ids_are_conserved_across_the_fold(graph):
    blocks = _blocks(
        ("Tope 10 UF", 5),
        ("Sin tope", 5),
        ("Solo libre elección", 3),
        ("80% Clínica A", 2),
        ("Sin tope red", 2),
        ("Tope anual 40 UF", 7),
    )
    sizes = [len(state.known_options()) for state in _fold(graph, blocks)]

    assert sizes == sorted(sizes)
    assert sizes[-1] == len(graph.options)


def test_preferente_80_and_90_coexist(graph):
    snapshot = canonicalize_row(graph, _blocks(("Hospitalario", 1)))

    assert {"PREF_80", "PREF_90"} <= set(snapshot.active_options)


def test_restrictions_accumulate_with_domain_at_append_time(graph):
    snapshot = canonicalize_row(graph, _blocks(("Tope 10 UF", 5), ("Medicamentos tope 20 UF", 6)))

    assert [(r.kind, r.cap.value, r.domain) for r in snapshot.restrictions] == [
        ("TOPE_UF", 10.0, "CLINICO"),
        ("TOPE_UF", 20.0, "FINANCIERO"),
    ]
    assert snapshot.domain == "FINANCIERO"
    assert snapshot.history == ["B1", "B2"]


def test_apply_operators_returns_new_state():
    state = LineState(active_options=("A",))
    (block,) = _blocks(("Solo libre elección", 3))
    updated = apply_operators(state, detect_operators(block))

    assert updated.inheritance_cut is True
    assert state.inheritance_cut is False


def test_canonicalize_table_groups_blocks_by_row(graph):
    blocks = _blocks(("Tope 10 UF", 5)) + [
        classify_block({"id": "X1", "row_id": "R2", "text": "Sin tope", "column": 5})
    ]
    snapshots = canonicalize_table(blocks, [graph])

    assert [s.row_id for s in snapshots] == ["R1", "R2"]
    assert snapshots[1].active_options == []
    assert snapshots[1].to_dict()["history"] == ["X1"]
