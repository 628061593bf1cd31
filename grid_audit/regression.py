"""Golden-set regression harness for extracted spatial maps and assignments.

A golden set is a directory holding ``index.json``::

    {"entries": [{"id", "source_document", "page", "spatial_map_file", "assignments_file"}]}

Records are compared by id only; a missing record is a regression, an extra
one is a plain failure.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .logging import get_logger

logger = get_logger(__name__)

MISSING = "MISSING"
EXTRA = "EXTRA"

STATUS_PASS = "PASS"
STATUS_FAIL = "FAIL"
STATUS_REGRESSION = "REGRESSION"

_MAP_SECTIONS = (
    ("columns", "column_id", "column_diff"),
    ("rows", "row_id", "row_diff"),
    ("zones", "zone_id", "zone_diff"),
)


@dataclass(slots=True)
class GoldenEntry:
    entry_id: str
    source_document: str
    page: int
    spatial_map: Dict[str, Any]
    assignments: List[Dict[str, Any]]


@dataclass(slots=True)
class Diff:
    path: str
    type: str
    expected: Any = None
    actual: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "type": self.type, "expected": self.expected, "actual": self.actual}


@dataclass(slots=True)
class RegressionResult:
    entry_id: str
    status: str
    diffs: List[Diff] = field(default_factory=list)
    metrics: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "status": self.status,
            "diffs": [d.to_dict() for d in self.diffs],
            "metrics": dict(self.metrics),
        }


@dataclass(slots=True)
class RegressionReport:
    results: List[RegressionResult]

    @property
    def summary(self) -> Dict[str, int]:
        counts = {"pass": 0, "fail": 0, "regression": 0}
        for result in self.results:
            counts[result.status.lower()] += 1
        return counts

    @property
    def ok(self) -> bool:
        return all(r.status == STATUS_PASS for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "results": [r.to_dict() for r in self.results]}


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read JSON file {path}: {exc}") from exc


def _assignment_records(raw: Any) -> List[Dict[str, Any]]:
    if isinstance(raw, Mapping):
        raw = raw.get("assignments")
    return [a for a in raw or [] if isinstance(a, Mapping)] if isinstance(raw, list) else []


def load_golden_set(directory: str | Path) -> List[GoldenEntry]:
    root = Path(directory)
    index_path = root / "index.json"
    if not index_path.exists():
        logger.warning("golden_set_missing", path=str(index_path))
        return []

    index = _read_json(index_path)
    entries: List[GoldenEntry] = []
    for raw in index.get("entries", []) if isinstance(index, Mapping) else []:
        map_path = root / str(raw.get("spatial_map_file", ""))
        assignments_path = root / str(raw.get("assignments_file", ""))
        if not map_path.is_file() or not assignments_path.is_file():
            logger.warning("golden_entry_incomplete", entry_id=raw.get("id"))
            continue
        entries.append(GoldenEntry(
            entry_id=str(raw.get("id")),
            source_document=str(raw.get("source_document", "")),
            page=int(raw.get("page", 0)),
            spatial_map=_read_json(map_path),
            assignments=_assignment_records(_read_json(assignments_path)),
        ))
    return entries


def diff_records(
    expected: Sequence[Mapping[str, Any]], actual: Sequence[Mapping[str, Any]], id_key: str
) -> List[Diff]:
    expected_ids = {e.get(id_key) for e in expected}
    actual_ids = {a.get(id_key) for a in actual}
    diffs = [
        Diff(path=f"{id_key}:{e.get(id_key)}", type=MISSING, expected=dict(e))
        for e in expected
        if e.get(id_key) not in actual_ids
    ]
    diffs.extend(
        Diff(path=f"{id_key}:{a.get(id_key)}", type=EXTRA, actual=dict(a))
        for a in actual
        if a.get(id_key) not in expected_ids
    )
    return diffs


def run_regression(
    entry: GoldenEntry,
    actual_map: Mapping[str, Any],
    actual_assignments: Sequence[Mapping[str, Any]],
) -> RegressionResult:
    diffs: List[Diff] = []
    metrics: Dict[str, int] = {}
    for section, id_key, metric in _MAP_SECTIONS:
        found = diff_records(entry.spatial_map.get(section, []), actual_map.get(section, []), id_key)
        metrics[metric] = len(found)
        diffs.extend(found)
    found = diff_records(entry.assignments, actual_assignments, "assignment_id")
    metrics["assignment_diff"] = len(found)
    diffs.extend(found)

    if not diffs:
        status = STATUS_PASS
    elif any(d.type == MISSING for d in diffs):
        status = STATUS_REGRESSION
    else:
        status = STATUS_FAIL
    return RegressionResult(entry_id=entry.entry_id, status=status, diffs=diffs, metrics=metrics)


def run_all_regressions(
    entries: Sequence[GoldenEntry],
    actual_outputs: Mapping[str, Tuple[Mapping[str, Any], Sequence[Mapping[str, Any]]]],
) -> RegressionReport:
    results: List[RegressionResult] = []
    for entry in entries:
        actual = actual_outputs.get(entry.entry_id)
        if actual is None:
            results.append(RegressionResult(
                entry_id=entry.entry_id,
                status=STATUS_FAIL,
                diffs=[Diff(path="output", type=MISSING, expected="present")],
                metrics={"column_diff": 0, "row_diff": 0, "zone_diff": 0, "assignment_diff": 0},
            ))
            continue
        results.append(run_regression(entry, actual[0], actual[1]))

    report = RegressionReport(results=results)
    logger.info("regression_done", **report.summary)
    return report


def load_actual_outputs(directory: str | Path, entry_ids: Sequence[str]) -> Dict[str, Tuple[Dict[str, Any], List[Dict[str, Any]]]]:
    """Read ``<id>.json`` audit packages from ``directory`` for the given entries."""
    root = Path(directory)
    outputs: Dict[str, Tuple[Dict[str, Any], List[Dict[str, Any]]]] = {}
    for entry_id in entry_ids:
        path = root / f"{entry_id}.json"
        if not path.is_file():
            continue
        package = _read_json(path)
        if not isinstance(package, Mapping):
            raise ValueError(f"Audit package {path} must contain a JSON object")
        spatial_map = package.get("spatial_map")
        outputs[entry_id] = (
            dict(spatial_map) if isinstance(spatial_map, Mapping) else {},
            _assignment_records(package.get("assignments")),
        )
    return outputs


def run_golden_set(golden_dir: str | Path, actual_dir: str | Path) -> RegressionReport:
    entries = load_golden_set(golden_dir)
    outputs = load_actual_outputs(actual_dir, [e.entry_id for e in entries])
    return run_all_regressions(entries, outputs)


__all__ = [
    "Diff",
    "GoldenEntry",
    "RegressionReport",
    "RegressionResult",
    "diff_records",
    "load_actual_outputs",
    "load_golden_set",
    "run_all_regressions",
    "run_golden_set",
    "run_regression",
]
