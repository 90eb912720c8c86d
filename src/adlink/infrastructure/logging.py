from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Callable
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog
from structlog.typing import Processor

from adlink.config.settings import LOG_FORMAT_JSON, LoggingSettings
from adlink.domain.models import StageEvent

BoundLogger = structlog.stdlib.BoundLogger
EventSink = Callable[[StageEvent], None]

def _build_processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def _configure_structlog(settings: LoggingSettings) -> None:
    json_logs = settings.format == LOG_FORMAT_JSON
    structlog.configure(
        processors=_build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def _build_handler(level: int, handler: logging.Handler) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(settings: LoggingSettings) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(settings.level)

    console_handler = _build_handler(settings.level, logging.StreamHandler(sys.stderr))
    root_logger.addHandler(console_handler)

    if settings.file_path:
        file_handler = _build_handler(
            settings.level,
            RotatingFileHandler(
                settings.file_path,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
                encoding="utf-8",
            ),
        )
        root_logger.addHandler(file_handler)

    _configure_structlog(settings)


def get_logger(name: str) -> BoundLogger:
    return structlog.get_logger(name)


def attach_run_context(
    logger: BoundLogger,
    *,
    run_id: str | None = None,
    **base_fields: Any,
) -> BoundLogger:
    bound = logger.bind(run_id=run_id or uuid.uuid4().hex[:12])
    extras = {key: value for key, value in base_fields.items() if value is not None}
    if extras:
        bound = bound.bind(**extras)
    return bound


def log_event(
    logger: BoundLogger,
    event: str,
    *,
    level: int = logging.INFO,
    message: str | None = None,
    **fields: Any,
) -> None:
    event_fields = {key: value for key, value in fields.items() if value is not None}
    event_logger = logger.bind(**event_fields) if event_fields else logger
    if message is not None:
        event_logger = event_logger.bind(message=message)
    event_logger.log(level, event)


class StructlogEventSink:
    """Forward diagnostics stage events to a structlog logger."""

    def __init__(self, logger: BoundLogger, *, event: str = "diagnostics.stage") -> None:
        self._logger = logger
        self._event = event

    def __call__(self, stage_event: StageEvent) -> None:
        level = logging.INFO if stage_event.success else logging.WARNING
        log_event(
            self._logger,
            self._event,
            level=level,
            stage=stage_event.stage.value,
            success=stage_event.success,
            category=stage_event.category.value if stage_event.category else None,
            elapsed_ms=round(stage_event.elapsed_ms, 1),
            detail=stage_event.detail or None,
        )


__all__ = [
    "BoundLogger",
    "EventSink",
    "StructlogEventSink",
    "attach_run_context",
    "configure_logging",
    "get_logger",
    "log_event",
]
