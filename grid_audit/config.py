"""Configuration loader for the grid audit validators."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

ENV_PREFIX = "GRID_AUDIT_"


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is not None:
        value = value.strip()
        if value == "":
            return default
        return value
    return default


def _get_int(key: str, default: int) -> int:
    value = _get_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be an integer") from exc


def _get_ratio(key: str, default: float) -> float:
    value = _get_env(key)
    if value is None:
        return default
    try:
        ratio = float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number") from exc
    if not 0.0 <= ratio <= 1.0:
        raise ValueError(f"Environment variable {key} must be between 0 and 1")
    return ratio


def _get_bool(key: str, default: bool) -> bool:
    value = _get_env(key)
    if value is None:
        return default
    value_lower = value.lower()
    if value_lower in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if value_lower in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(f"Environment variable {key} must be a boolean")


@dataclass(slots=True, frozen=True)
class HeaderBandPolicy:
    """Thresholds an echo-header pointer must clear to be promoted to a row band."""

    allow_row_band_promotion: bool = False
    min_geometry: float = 0.9
    min_text: float = 0.9


@dataclass(slots=True, frozen=True)
class AppConfig:
    log_level: str = "INFO"
    min_zone_confidence: float = 0.8
    max_promoted_echo: int = 5
    max_synthetic_ratio: float = 0.3
    bbox_epsilon: float = 0.01
    header_band_policy: HeaderBandPolicy = HeaderBandPolicy()
    vocabulary_path: Optional[str] = None
    pipeline_version: str = "1.5.0"
    spec_version: str = "v1.5.0-INDUSTRIAL-STRICT"


def load_config() -> AppConfig:
    policy = HeaderBandPolicy(
        allow_row_band_promotion=_get_bool(f"{ENV_PREFIX}ALLOW_ROW_BAND_PROMOTION", False),
        min_geometry=_get_ratio(f"{ENV_PREFIX}PROMOTION_MIN_GEOMETRY", 0.9),
        min_text=_get_ratio(f"{ENV_PREFIX}PROMOTION_MIN_TEXT", 0.9),
    )
    return AppConfig(
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        min_zone_confidence=_get_ratio(f"{ENV_PREFIX}MIN_ZONE_CONFIDENCE", 0.8),
        max_promoted_echo=max(0, _get_int(f"{ENV_PREFIX}MAX_PROMOTED_ECHO", 5)),
        max_synthetic_ratio=_get_ratio(f"{ENV_PREFIX}MAX_SYNTHETIC_RATIO", 0.3),
        bbox_epsilon=_get_ratio(f"{ENV_PREFIX}BBOX_EPSILON", 0.01),
        header_band_policy=policy,
        vocabulary_path=_get_env(f"{ENV_PREFIX}VOCABULARY_PATH"),
        pipeline_version=_get_env(f"{ENV_PREFIX}PIPELINE_VERSION", "1.5.0"),
        spec_version=_get_env(f"{ENV_PREFIX}SPEC_VERSION", "v1.5.0-INDUSTRIAL-STRICT"),
    )
