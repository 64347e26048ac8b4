"""
Structured Logging for the Receipt Pipeline

Provides:
- ``pipeline_context()``: scoped fields (pipeline_id, batch_sequence)
  attached to every record emitted inside the block, across awaits
- ``ContextFilter``: copies scoped fields onto log records
- ``JsonFormatter``: one JSON object per line
- ``PipelineLogger``: LoggerAdapter taking structured fields as kwargs

Modules log through ``logging.getLogger(__name__)``; only components
that carry an instance id wrap their logger in ``PipelineLogger``.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, MutableMapping, Optional, TextIO

_fields: ContextVar[dict[str, Any]] = ContextVar("receiptflow_log_fields", default={})

# Attributes every LogRecord carries; anything else came in via ``extra``
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

_PASSTHROUGH_KWARGS = ("exc_info", "stack_info", "stacklevel", "extra")

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def parse_level(name: str, default: int = logging.INFO) -> int:
    """Map ``"debug"``/``"WARNING"``/... to a logging level number."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


@contextmanager
def pipeline_context(**fields: Any) -> Iterator[None]:
    """
    Attach ``fields`` to every record logged inside the block.

    Usage:
        with pipeline_context(batch_sequence=batch.sequence):
            await dispatcher.dispatch(batch)
    """
    token = _fields.set({**_fields.get(), **fields})
    try:
        yield
    finally:
        _fields.reset(token)


def current_context() -> dict[str, Any]:
    return dict(_fields.get())


class ContextFilter(logging.Filter):
    """Copy scoped fields onto the record without clobbering explicit extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _fields.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Render a record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PipelineLogger(logging.LoggerAdapter):
    """
    Adapter that turns keyword arguments into structured fields.

    Usage:
        log = PipelineLogger(logging.getLogger(__name__), pipeline_id="a1b2")
        log.info("Read-receipt pipeline started", window_ms=5000)
    """

    def __init__(self, logger: logging.Logger, **fields: Any) -> None:
        super().__init__(logger, fields)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _PASSTHROUGH_KWARGS}
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {}), **fields}
        return msg, kwargs

    def bind(self, **fields: Any) -> PipelineLogger:
        """Child adapter with additional default fields."""
        return PipelineLogger(self.logger, **{**self.extra, **fields})

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self.extra)


def setup_logging(
    level: int = logging.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """
    Install a single root handler.

    Args:
        level: Minimum level for the root logger and handler
        json_output: JSON lines instead of the plain format
        stream: Output stream (default: stderr)

    Returns:
        The installed handler
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)

    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))

    return handler
