"""Structured logging for audit and canonizer runs.

Every event is one JSON line on stderr. Events emitted from inside the
package carry a ``component`` key (``geometer``, ``jurist``, ``packager``,
``canonizer``...) so a page's QC trail can be filtered per validator.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

import structlog

PACKAGE_PREFIX = "grid_audit."


def add_component(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    name = event_dict.get("logger") or ""
    if name.startswith(PACKAGE_PREFIX):
        event_dict.setdefault("component", name[len(PACKAGE_PREFIX):])
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            add_component,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
