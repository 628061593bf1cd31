"""Core package for the benefits-grid audit validator and option canonicalizer."""

__all__ = [
    "config",
    "models",
    "normalizer",
    "geometer",
    "jurist",
    "packager",
    "vocabulary",
    "blocks",
    "canonizer",
    "checker",
    "regression",
    "pipeline",
    "cli",
]
