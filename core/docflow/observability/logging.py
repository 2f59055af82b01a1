"""
Structured logging with run-scoped trace context.

The orchestrator stamps ``run_id`` (and ``document_id`` when known) into a
ContextVar at the start of every document run; the executor adds ``node``
inside each node task. Since every node runs in its own asyncio task, it
gets a copy of the context and sibling nodes never see each other's
``node`` field.

    Orchestrator.run()      → set_trace_context(run_id=..., document_id=...)
        ↓ (ContextVar copy per task)
    NodeExecutor._run_node  → trace_scope(node=...)
        ↓
    logger.info("...")      → record carries run_id, document_id, node
"""

import json
import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("docflow_trace", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Optional attributes passed via ``extra=`` that end up in JSON log lines
_EXTRA_FIELDS = ("event", "latency_ms", "tokens_used", "node", "priority", "group")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """JSON formatter: one object per line with trace context merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
        }
        log_entry.update(trace_context.get() or {})

        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            log_entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colourised single-line formatter for local runs."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        context = trace_context.get() or {}

        prefix_parts = []
        if context.get("run_id"):
            prefix_parts.append(f"run:{context['run_id'][-8:]}")
        if context.get("document_id"):
            prefix_parts.append(f"doc:{context['document_id']}")
        if context.get("node"):
            prefix_parts.append(f"node:{context['node']}")
        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        level = f"{record.levelname:<8}"
        message = f"{color}[{level}]{self.RESET} {context_prefix}{record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure root logging for a docflow process.

    Call once at startup (the CLI does this). ``format="auto"`` picks JSON
    when ``LOG_FORMAT=json`` or ``ENV=production``, human-readable otherwise.
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()
        format = "json" if log_format_env == "json" or env == "production" else "human"

    formatter: logging.Formatter
    if format == "json":
        formatter = StructuredFormatter()
        os.environ["NO_COLOR"] = "1"
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # LiteLLM is chatty at INFO; route it through our handler and quiet it down
    litellm_logger = logging.getLogger("LiteLLM")
    litellm_logger.handlers.clear()
    litellm_logger.propagate = True
    litellm_logger.setLevel(max(logging.WARNING, root_logger.level))


def set_trace_context(**kwargs: Any) -> None:
    """Merge fields into the current trace context."""
    current = trace_context.get() or {}
    trace_context.set({**current, **kwargs})


def get_trace_context() -> dict[str, Any]:
    """Return a copy of the current trace context (empty dict if unset)."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    """Drop all trace fields. Mostly useful between tests."""
    trace_context.set(None)


@contextmanager
def trace_scope(**kwargs: Any) -> Iterator[None]:
    """Add trace fields for the duration of a block, then restore the previous context."""
    token = trace_context.set({**(trace_context.get() or {}), **kwargs})
    try:
        yield
    finally:
        trace_context.reset(token)
