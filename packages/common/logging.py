"""Logging setup: structlog events rendered through the stdlib root handler.

Every event emitted during an import or stats sync carries that run's
``import_id``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TextIO
from uuid import uuid4

import structlog

import_id_var: ContextVar[str | None] = ContextVar("import_id", default=None)


def get_import_id() -> str | None:
    return import_id_var.get()


def set_import_id(import_id: str | None = None) -> str:
    """Start tagging log events with ``import_id``; a 12-char hex ID is made up if omitted."""
    import_id = import_id or uuid4().hex[:12]
    import_id_var.set(import_id)
    return import_id


def clear_import_id() -> None:
    import_id_var.set(None)


def _add_import_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    import_id = import_id_var.get()
    if import_id is not None:
        event_dict.setdefault("import_id", import_id)
    return event_dict


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_import_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(
    *,
    debug: bool = False,
    json_output: bool = False,
    log_stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib records to one handler on ``log_stream``.

    Records are rendered as JSON lines when ``json_output`` is set and as
    console text otherwise. Replaces any handlers already on the root logger.
    """
    pre_chain = _pre_chain()
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handler = logging.StreamHandler(log_stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    # Per-request lines from the REST backend only in debug runs
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def get_logger(**initial_context: object) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(**initial_context)
    return logger
