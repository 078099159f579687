"""
activeseries.tier0_core.logging
────────────────────────────────
Structured logs with levels and context injection (tenant, flag, path).
Used by the configuration load and reload paths only; the per-sample
ingestion path never logs.

Minimal stack: structlog (stdout JSON or console)
Configure via: ACTIVESERIES_LOG_LEVEL, ACTIVESERIES_LOG_FORMAT=json|console
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


# ── Configuration ─────────────────────────────────────────────────────────────

def _configure_structlog() -> None:
    log_level = os.getenv("ACTIVESERIES_LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("ACTIVESERIES_LOG_FORMAT", "json").lower()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _truncate_processor,
    ]

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))


# ── Truncation processor ──────────────────────────────────────────────────────

# Flag values and matcher sources are user input and can be arbitrarily long.
_MAX_VALUE_CHARS = 512


def _truncate_processor(
    logger: Any, method: str, event_dict: dict
) -> dict:
    """Clip long string fields before output."""
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) > _MAX_VALUE_CHARS:
            event_dict[key] = value[:_MAX_VALUE_CHARS] + "...(truncated)"
    return event_dict


# ── Public API ────────────────────────────────────────────────────────────────

_configured = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger bound to the given name.

    Usage:
        log = get_logger(__name__)
        log.info("overrides.published", tenants=3)
        log.warning("overrides.reload_rejected", error_code="schema_error")
    """
    global _configured
    if not _configured:
        _configure_structlog()
        _configured = True
    return structlog.get_logger(name or __name__)


def bind_context(**kwargs: Any) -> None:
    """
    Bind key-value pairs to the current thread/async context.
    All subsequent log calls in this context will include these fields.

    Usage:
        bind_context(runtime_config="/etc/activeseries/overrides.yaml")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all context-bound log fields."""
    structlog.contextvars.clear_contextvars()


__all__ = ["get_logger", "bind_context", "clear_context"]
