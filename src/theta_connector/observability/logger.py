"""Structured logging with call_id support.

Uses structlog for structured logging with JSON output.  Standard library
records are routed through structlog's ``ProcessorFormatter`` so every
module can keep using ``logging.getLogger(__name__)``.  Each correlated
call sets a fresh call_id, attached to every log entry emitted while it
runs.
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any

import structlog

# Context var for call_id propagation
_call_id: ContextVar[str] = ContextVar("call_id", default="")


def get_call_id() -> str:
    """Get current call ID from context (empty outside a correlated call)."""
    return _call_id.get()


def set_call_id(call_id: str) -> Token[str]:
    """Set call ID in context.  Pass the returned token to ``reset_call_id``."""
    return _call_id.set(call_id)


def reset_call_id(token: Token[str]) -> None:
    """Restore the call ID that was current before ``set_call_id``."""
    _call_id.reset(token)


def make_call_id() -> str:
    return uuid.uuid4().hex[:12]


def new_call_id() -> str:
    """Generate and set a new call ID."""
    cid = make_call_id()
    _call_id.set(cid)
    return cid


def _add_call_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: add call_id when one is set."""
    cid = get_call_id()
    if cid:
        event_dict["call_id"] = cid
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for production, "console" for development.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_call_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
