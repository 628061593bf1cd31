"""Row-scoped option state engine.

Each table row starts with every option of its OptionGraph active. Blocks
are folded left-to-right twice:

* the operator pass records restrictions, domain shifts and the
  inheritance-cut flag on an immutable ``LineState``;
* the re-interpretation pass moves options between active and latent
  according to each block's effect and scope.

Options are never removed; they only change sides. Options made latent by an
inheritance cut stay latent for the rest of the row.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .blocks import (
    CAMBIO_DOMINIO_FINANCIERO,
    HERENCIA_CORTADA,
    Block,
    Cap,
    Operator,
    Restriction,
    cap_from_value,
    detect_operators,
)
from .logging import get_logger
from .models import _as_float, _as_list, _as_str
from .vocabulary import (
    EXPANSIVO,
    LIMITANTE,
    PORCENTAJE,
    PREFERENTE_RED,
    PREFERENTE_SCOPES,
    SCOPES,
    TOPE_ANUAL_NFE,
    TOPE_EVENTO,
    Vocabulary,
    default_vocabulary,
)

logger = get_logger(__name__)

PREFERENTE = "preferente"
LIBRE_ELECCION = "libre_eleccion"

CLINICO = "CLINICO"
FINANCIERO = "FINANCIERO"

LIMITANTE_TOPE = "LIMITANTE_TOPE"


@dataclass(slots=True, frozen=True)
class OptionNode:
    option_id: str
    modality: str
    scopes: frozenset = frozenset()
    percentage: Optional[float] = None
    providers: Tuple[str, ...] = ()
    event_cap: Optional[Cap] = None
    annual_cap: Optional[Cap] = None

    @property
    def is_preferente(self) -> bool:
        return self.modality == PREFERENTE

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OptionNode":
        """Scopes default from the populated fields when the document omits them."""
        modality = _as_str(raw.get("modality", raw.get("modalidad")), LIBRE_ELECCION).lower()
        percentage = raw.get("percentage", raw.get("porcentaje"))
        percentage = _as_float(percentage) if percentage is not None else None
        event_cap = cap_from_value(raw.get("event_cap", raw.get("tope_evento")))
        annual_cap = cap_from_value(raw.get("annual_cap", raw.get("tope_anual")))

        scopes = {s for s in _as_list(raw.get("scopes")) if s in SCOPES}
        if not scopes:
            if modality == PREFERENTE:
                scopes.add(PREFERENTE_RED)
            if percentage is not None:
                scopes.add(PORCENTAJE)
            if event_cap is not None:
                scopes.add(TOPE_EVENTO)
            if annual_cap is not None:
                scopes.add(TOPE_ANUAL_NFE)

        return cls(
            option_id=_as_str(raw.get("id", raw.get("option_id"))),
            modality=modality,
            scopes=frozenset(scopes),
            percentage=percentage,
            providers=tuple(_as_str(p) for p in _as_list(raw.get("providers", raw.get("prestadores")))),
            event_cap=event_cap,
            annual_cap=annual_cap,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.option_id,
            "modality": self.modality,
            "scopes": sorted(self.scopes),
            "percentage": self.percentage,
            "providers": list(self.providers),
            "event_cap": self.event_cap.to_dict() if self.event_cap else None,
            "annual_cap": self.annual_cap.to_dict() if self.annual_cap else None,
        }


@dataclass(slots=True)
class OptionGraph:
    row_id: str
    options: "OrderedDict[str, OptionNode]" = field(default_factory=OrderedDict)
    name: str = ""

    def get(self, option_id: str) -> Optional[OptionNode]:
        return self.options.get(option_id)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "OptionGraph":
        options: "OrderedDict[str, OptionNode]" = OrderedDict()
        for entry in _as_list(raw.get("options", raw.get("opciones"))):
            if isinstance(entry, Mapping):
                node = OptionNode.from_dict(entry)
                options[node.option_id] = node
        return cls(
            row_id=_as_str(raw.get("row_id", raw.get("rowId"))),
            options=options,
            name=_as_str(raw.get("name", raw.get("nombre"))),
        )


@dataclass(slots=True, frozen=True)
class LatentOption:
    option_id: str
    reason: str
    scope: str
    source_block: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.option_id,
            "reason": self.reason,
            "scope": self.scope,
            "source_block": self.source_block,
        }


@dataclass(slots=True, frozen=True)
class LineState:
    active_options: Tuple[str, ...] = ()
    latent_options: Tuple[LatentOption, ...] = ()
    restrictions: Tuple[Restriction, ...] = ()
    domain: str = CLINICO
    inheritance_cut: bool = False
    history: Tuple[str, ...] = ()

    def known_options(self) -> set:
        return set(self.active_options) | {lo.option_id for lo in self.latent_options}


def initial_state(graph: OptionGraph) -> LineState:
    return LineState(active_options=tuple(graph.options))


def apply_operators(state: LineState, operators: Iterable[Operator]) -> LineState:
    for op in operators:
        if op.type == HERENCIA_CORTADA:
            state = replace(state, inheritance_cut=True)
        elif op.type == CAMBIO_DOMINIO_FINANCIERO:
            state = replace(state, domain=FINANCIERO)
        elif op.restriction is not None:
            restriction = replace(op.restriction, domain=state.domain)
            state = replace(state, restrictions=(*state.restrictions, restriction))
    return state


def _inherits_network(option: Optional[OptionNode]) -> bool:
    return option is not None and (option.is_preferente or bool(option.scopes & PREFERENTE_SCOPES))


def _cut_inheritance(block: Block, state: LineState, graph: OptionGraph) -> LineState:
    """Move every network option to latent for good, including ones already limited."""
    latent: List[LatentOption] = [
        LatentOption(lo.option_id, HERENCIA_CORTADA, block.scope, block.block_id)
        if lo.reason != HERENCIA_CORTADA and _inherits_network(graph.get(lo.option_id))
        else lo
        for lo in state.latent_options
    ]
    keep: List[str] = []
    for option_id in state.active_options:
        if _inherits_network(graph.get(option_id)):
            latent.append(LatentOption(option_id, HERENCIA_CORTADA, block.scope, block.block_id))
        else:
            keep.append(option_id)
    return replace(state, active_options=tuple(keep), latent_options=tuple(latent))


def _limit(block: Block, state: LineState, graph: OptionGraph) -> LineState:
    keep: List[str] = []
    latent = list(state.latent_options)
    for option_id in state.active_options:
        option = graph.get(option_id)
        if option is not None and block.scope in option.scopes:
            latent.append(LatentOption(option_id, LIMITANTE_TOPE, block.scope, block.block_id))
        else:
            keep.append(option_id)
    return replace(state, active_options=tuple(keep), latent_options=tuple(latent))


def _expand(block: Block, state: LineState, graph: OptionGraph) -> LineState:
    active = list(state.active_options)
    remaining: List[LatentOption] = []
    for lo in state.latent_options:
        option = graph.get(lo.option_id)
        if lo.reason == HERENCIA_CORTADA or option is None or block.scope not in option.scopes:
            remaining.append(lo)
            continue
        if lo.option_id not in active:
            active.append(lo.option_id)
    return replace(state, active_options=tuple(active), latent_options=tuple(remaining))


def reinterpret_block(
    block: Block,
    state: LineState,
    graph: OptionGraph,
    operators: Sequence[Operator] = (),
) -> LineState:
    state = replace(state, history=(*state.history, block.block_id))
    if any(op.type == HERENCIA_CORTADA for op in operators):
        state = _cut_inheritance(block, state, graph)
    if block.effect == LIMITANTE:
        return _limit(block, state, graph)
    if block.effect == EXPANSIVO:
        return _expand(block, state, graph)
    return state


@dataclass(slots=True)
class RowSnapshot:
    row_id: str
    active_options: List[str]
    latent_options: List[LatentOption]
    restrictions: List[Restriction]
    domain: str
    inheritance_cut: bool
    history: List[str]

    @classmethod
    def from_state(cls, row_id: str, state: LineState) -> "RowSnapshot":
        return cls(
            row_id=row_id,
            active_options=list(state.active_options),
            latent_options=list(state.latent_options),
            restrictions=list(state.restrictions),
            domain=state.domain,
            inheritance_cut=state.inheritance_cut,
            history=list(state.history),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_id": self.row_id,
            "active_options": list(self.active_options),
            "latent_options": [lo.to_dict() for lo in self.latent_options],
            "restrictions": [r.to_dict() for r in self.restrictions],
            "domain": self.domain,
            "inheritance_cut": self.inheritance_cut,
            "history": list(self.history),
        }


def canonicalize_row(
    graph: OptionGraph,
    blocks: Sequence[Block],
    vocabulary: Optional[Vocabulary] = None,
) -> RowSnapshot:
    """Fold the row's blocks, in document order, into a snapshot of its options."""
    vocab = vocabulary or default_vocabulary()
    operators = [detect_operators(block, vocab) for block in blocks]

    state = initial_state(graph)
    for ops in operators:
        state = apply_operators(state, ops)
    for block, ops in zip(blocks, operators):
        state = reinterpret_block(block, state, graph, ops)

    logger.debug(
        "row_canonicalized",
        row_id=graph.row_id,
        active=len(state.active_options),
        latent=len(state.latent_options),
        restrictions=len(state.restrictions),
    )
    return RowSnapshot.from_state(graph.row_id, state)


def canonicalize_table(
    blocks: Sequence[Block],
    graphs: Sequence[OptionGraph],
    vocabulary: Optional[Vocabulary] = None,
) -> List[RowSnapshot]:
    """Canonicalize every row; rows with blocks but no options get an empty graph."""
    by_row: "OrderedDict[str, List[Block]]" = OrderedDict()
    for graph in graphs:
        by_row.setdefault(graph.row_id, [])
    for block in blocks:
        by_row.setdefault(block.row_id, []).append(block)

    graph_by_row = {g.row_id: g for g in graphs}
    return [
        canonicalize_row(graph_by_row.get(row_id) or OptionGraph(row_id=row_id), row_blocks, vocabulary)
        for row_id, row_blocks in by_row.items()
    ]
