import pytest

from grid_audit.models import SpatialMap


@pytest.fixture()
def map_doc():
    return {
        "page_metadata": {"page": 3},
        "columns": [
            {"column_id": "COL_PRESTACION", "x_range": [0.0, 0.3], "confidence": 0.95},
            {"column_id": "COL_PREF_PCT", "x_range": [0.3, 0.5], "confidence": 0.95},
            {"column_id": "COL_LE_PCT", "x_range": [0.5, 0.7], "confidence": 0.95},
            {"column_id": "COL_TOPE", "x_range": [0.7, 1.0], "confidence": 0.95},
        ],
        "rows": [
            {"row_id": "R1", "y_range": [0.10, 0.15], "raw_text": "Dia cama"},
            {"row_id": "R2", "y_range": [0.15, 0.20], "raw_text": "Honorarios"},
        ],
        "zones": [
            {
                "zone_id": "Z_PREF",
                "zone_type": "ZONE_GRAPHIC_RULE",
                "scope_mode": "ROW_BAND",
                "geometric_scope": {"x": [0.3, 0.5], "y": [0.1, 0.2]},
                "contains_text": "100% Sin Tope",
                "confidence": {"geometry": 0.95, "text": 0.9},
                "applies_to_columns": ["COL_PREF_PCT"],
                "has_conditions": False,
            }
        ],
        "row_groups": [{"id": "G1", "rows": ["R1", "R2"]}],
    }


@pytest.fixture()
def spatial_map(map_doc):
    return SpatialMap.from_dict(map_doc)


def direct_assignment(assignment_id, row_id, column_id, x_range, status="ACTIVE_TEXT_DIRECT", text="90%"):
    return {
        "assignment_id": assignment_id,
        "row_id": row_id,
        "column_id": column_id,
        "pointer": {
            "type": "TEXT_DIRECT_CELL",
            "raw_text": text,
            "bbox": [x_range[0], 0.11, x_range[1], 0.13],
        },
        "atoms": [
            {"type": "RULE", "key": "TEXT_DIRECT", "value": 90.0, "unit": "%", "original_text": text}
        ],
        "status": status,
        "confidence": {"row_confidence": 0.95, "assignment_confidence": 0.95},
    }


def echo_assignment(assignment_id, row_id, column_id, confidence=0.95, status="CONDITIONAL"):
    return {
        "assignment_id": assignment_id,
        "row_id": row_id,
        "column_id": column_id,
        "pointer": {"type": "TEXT_ECHO_HEADER", "raw_text": "% Bonificacion"},
        "atoms": [
            {"type": "RULE", "key": "TEXT_DIRECT", "value": 80.0, "unit": "%", "original_text": "80%"}
        ],
        "status": status,
        "confidence": {"row_confidence": confidence, "assignment_confidence": confidence},
    }
