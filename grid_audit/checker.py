"""Consistency checks over a row's canonical options.

  E1  provider listed under both preferente 80% and 90%
  E2  suspicious provider placed in a preferente 90% path
  E4  preferente option with providers but no percentage
  E5  inheritance cut while an active preferente option with providers survives
  E6  event and annual cap collapsed into the same value
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .canonizer import OptionGraph, OptionNode, RowSnapshot
from .vocabulary import Vocabulary, default_vocabulary

CRITICA = "CRITICA"
ALTA = "ALTA"
MEDIA = "MEDIA"
BAJA = "BAJA"


@dataclass(slots=True)
class Violation:
    code: str
    severity: str
    row_id: str
    message: str
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity,
            "row_id": self.row_id,
            "message": self.message,
            "evidence": dict(self.evidence),
        }


def _preferente_at(options: Sequence[OptionNode], percentage: float) -> List[OptionNode]:
    return [o for o in options if o.is_preferente and o.percentage == percentage]


def check_options(
    row_id: str,
    options: Sequence[OptionNode],
    active_ids: Optional[Sequence[str]] = None,
    inheritance_cut: bool = False,
    suspicious_providers: Sequence[str] = (),
    name: str = "",
) -> List[Violation]:
    violations: List[Violation] = []

    pref80 = {p for o in _preferente_at(options, 80) for p in o.providers}
    pref90 = {p for o in _preferente_at(options, 90) for p in o.providers}
    mixed = sorted(pref80 & pref90)
    if mixed:
        violations.append(Violation(
            code="E1_PROVIDER_MIXING",
            severity=CRITICA,
            row_id=row_id,
            message=f"Provider listed under both preferente 80% and 90%: {mixed[0]}",
            evidence={"provider": mixed[0], "name": name},
        ))

    for suspect in suspicious_providers:
        if any(suspect in p for p in pref90):
            violations.append(Violation(
                code="E2_A2_80_BAD_REEXPANSION",
                severity=ALTA,
                row_id=row_id,
                message=f"{suspect} appears in a preferente 90% group; expected under the 80% tier.",
                evidence={"provider": suspect, "name": name},
            ))

    for option in options:
        if option.is_preferente and option.providers and option.percentage is None:
            violations.append(Violation(
                code="E4_WIDE_PATH_NO_PERCENT",
                severity=MEDIA,
                row_id=row_id,
                message="Preferente option without percentage (path too wide).",
                evidence={"option_id": option.option_id, "name": name},
            ))

    if inheritance_cut:
        active = set(active_ids) if active_ids is not None else {o.option_id for o in options}
        survivors = [o.option_id for o in options if o.option_id in active and o.is_preferente and o.providers]
        if survivors:
            violations.append(Violation(
                code="E5_HERENCIA_CORTADA_BROKEN",
                severity=CRITICA,
                row_id=row_id,
                message="Inheritance cut is set but preferente options with providers remain active.",
                evidence={"option_ids": survivors, "name": name},
            ))

    for option in options:
        if option.event_cap is not None and option.event_cap == option.annual_cap:
            violations.append(Violation(
                code="E6_TOPE_COLLAPSE",
                severity=ALTA,
                row_id=row_id,
                message="Event cap and annual cap are identical; cap separation likely failed.",
                evidence={
                    "option_id": option.option_id,
                    "event_cap": option.event_cap.to_dict(),
                    "annual_cap": option.annual_cap.to_dict(),
                },
            ))

    return violations


def check_snapshot(
    snapshot: RowSnapshot, graph: OptionGraph, vocabulary: Optional[Vocabulary] = None
) -> List[Violation]:
    vocab = vocabulary or default_vocabulary()
    return check_options(
        snapshot.row_id,
        list(graph.options.values()),
        active_ids=snapshot.active_options,
        inheritance_cut=snapshot.inheritance_cut,
        suspicious_providers=vocab.suspicious_providers,
        name=graph.name,
    )
