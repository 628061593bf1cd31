"""Wire the validators and the canonizer into document-level operations."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .blocks import classify_block
from .canonizer import OptionGraph, canonicalize_table
from .checker import check_snapshot
from .config import AppConfig, HeaderBandPolicy
from .geometer import validate_spatial_map
from .jurist import FallbackCursor, validate_assignments
from .logging import get_logger
from .models import SpatialMap, assignments_from_list
from .packager import AuditPackage, package_audit_bundle
from .vocabulary import Vocabulary, default_vocabulary

logger = get_logger(__name__)


def load_json(path: str | Path) -> Any:
    source = Path(path)
    try:
        return json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"Cannot read JSON file {source}: {exc}") from exc


def audit_page(
    map_doc: Any,
    assignments_doc: Any,
    source_document: str = "",
    page: int = 0,
    header_band_policy: Optional[HeaderBandPolicy] = None,
    config: Optional[AppConfig] = None,
) -> AuditPackage:
    """Run Geometer, Jurist and Packager over one page's extraction output."""
    cfg = config or AppConfig()
    spatial_map = SpatialMap.from_dict(map_doc)
    assignments = assignments_from_list(assignments_doc)

    geo_report = validate_spatial_map(spatial_map, cfg)
    jurist = validate_assignments(
        assignments,
        spatial_map,
        header_band_policy=header_band_policy,
        config=cfg,
        cursor=FallbackCursor(),
    )
    return package_audit_bundle(
        {"source_document": source_document, "page": page},
        jurist.spatial_map,
        jurist.fixed_assignments,
        geo_report,
        jurist.report,
        jurist.pseudo_zones,
        config=cfg,
    )


def canonicalize_document(
    blocks_doc: Any,
    options_doc: Any,
    vocabulary: Optional[Vocabulary] = None,
) -> Dict[str, Any]:
    """Canonicalize every row of a table and run the option checker on the result.

    ``blocks_doc`` is ``{"blocks": [...]}`` or a bare list; ``options_doc`` is
    ``{"rows": [{"row_id", "name"?, "options": [...]}]}`` or a bare list of rows.
    """
    vocab = vocabulary or default_vocabulary()
    raw_blocks = blocks_doc.get("blocks", []) if isinstance(blocks_doc, Mapping) else blocks_doc
    raw_rows = options_doc.get("rows", []) if isinstance(options_doc, Mapping) else options_doc

    blocks = [classify_block(b, vocab) for b in raw_blocks or [] if isinstance(b, Mapping)]
    graphs = [OptionGraph.from_dict(r) for r in raw_rows or [] if isinstance(r, Mapping)]
    graph_by_row = {g.row_id: g for g in graphs}

    rows: List[Dict[str, Any]] = []
    violation_count = 0
    for snapshot in canonicalize_table(blocks, graphs, vocab):
        graph = graph_by_row.get(snapshot.row_id) or OptionGraph(row_id=snapshot.row_id)
        violations = check_snapshot(snapshot, graph, vocab)
        violation_count += len(violations)
        row = snapshot.to_dict()
        row["violations"] = [v.to_dict() for v in violations]
        rows.append(row)

    logger.info("document_canonicalized", rows=len(rows), blocks=len(blocks), violations=violation_count)
    return {
        "blocks": [b.to_dict() for b in blocks],
        "rows": rows,
        "summary": {"rows": len(rows), "blocks": len(blocks), "violations": violation_count},
    }
