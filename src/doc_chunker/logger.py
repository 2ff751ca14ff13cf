"""Structured JSON logging for the chunking pipeline.

Every record is one JSON object per line on stdout:
{"time":"2026-02-03T14:06:20.829529-05:00","level":"INFO","source":{"function":"extract","file":"pdf_parser.py","line":43},"msg":"stage accepted","stage":"basic"}

Context fields (set with ``set_context`` or the ``log_context`` manager) are
merged into every record emitted by the current thread or task.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

LOG_LEVEL_ENV = "DOC_CHUNKER_LOG_LEVEL"

_log_context: ContextVar[dict[str, Any]] = ContextVar("doc_chunker_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.now(timezone.utc).astimezone().isoformat(),
            "level": record.levelname,
            "source": {
                "function": record.funcName,
                "file": os.path.basename(record.pathname),
                "line": record.lineno,
            },
            "msg": record.getMessage(),
        }

        ctx_fields = _log_context.get()
        if ctx_fields:
            entry.update(ctx_fields)

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            entry.update(extra_fields)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # default=str keeps numpy scalars and paths serialisable
        return json.dumps(entry, default=str)


class StructuredLogger:
    """Logger emitting structured JSON with keyword fields."""

    def __init__(self, name: str = "doc_chunker", level: str | None = None):
        self._logger = logging.getLogger(name)
        self._logger.setLevel(_resolve_level(level))
        self._logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        self._logger.addHandler(handler)
        self._logger.propagate = False

    @property
    def level(self) -> int:
        return self._logger.level

    def _log(
        self,
        level: int,
        msg: str,
        stacklevel: int = 3,
        exc_info: bool = False,
        **fields: Any,
    ) -> None:
        extra = {"extra_fields": fields} if fields else {}
        self._logger.log(level, msg, stacklevel=stacklevel, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, **fields)

    def warn(self, msg: str, **fields: Any) -> None:
        self._log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        self._log(logging.ERROR, msg, **fields)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log an error together with the active exception's traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **fields)


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv(LOG_LEVEL_ENV) or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def set_context(**fields: Any) -> None:
    """Add fields to every subsequent record in the current context.

    Example:
        set_context(file_type="pdf", source="report.pdf")
        logger.info("extraction started")  # carries file_type and source
    """
    current = _log_context.get()
    _log_context.set({**current, **fields})


def clear_context() -> None:
    """Drop all context fields."""
    _log_context.set({})


def get_context() -> dict[str, Any]:
    """Return a copy of the current context fields."""
    return _log_context.get().copy()


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Scope context fields to a ``with`` block, restoring the previous ones on exit."""
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


logger = StructuredLogger("doc_chunker")
