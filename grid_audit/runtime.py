"""Runtime wiring for CLI and service entrypoints."""

from __future__ import annotations

from dataclasses import dataclass

from .config import AppConfig, load_config
from .logging import configure_logging
from .vocabulary import Vocabulary, load_vocabulary


@dataclass(slots=True)
class Runtime:
    config: AppConfig
    vocabulary: Vocabulary


def build_runtime(config: AppConfig | None = None) -> Runtime:
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    return Runtime(config=cfg, vocabulary=load_vocabulary(cfg.vocabulary_path))
