from __future__ import annotations

import json
import logging
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace

from gacha_api.core.settings import settings

# Attributes every stdlib LogRecord carries; anything else was passed via ``extra=``
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Third-party loggers that flood the sink at DEBUG/INFO
_QUIET_LOGGERS: Dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib log records (uvicorn, sqlalchemy, alembic) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_FIELDS}
        target = logger.bind(stdlib_logger=record.name, **extra)
        # Escape braces so Loguru does not treat the preformatted message as a template
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        target.opt(depth=6, exception=record.exc_info).log(level, message)


class JsonLogSink:
    """Write one JSON document per record, tagged with service identity and trace ids."""

    def __init__(self, *, service_name: str, environment: str, version: str) -> None:
        self._identity = {"service": service_name, "environment": environment, "version": version}

    def __call__(self, message: Any) -> None:
        record = message.record
        document: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            **self._identity,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            document["trace_id"] = format(span_context.trace_id, "032x")
            document["span_id"] = format(span_context.span_id, "016x")

        document.update(record["extra"])
        if record["exception"] is not None:
            document["exception"] = repr(record["exception"].value)

        print(json.dumps(document, default=str))


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Route Loguru and stdlib logging into a single structured JSON sink."""

    logger.remove()
    logger.add(
        JsonLogSink(service_name=service_name, environment=environment, version=version),
        level=settings.log_level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
