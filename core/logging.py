"""JSON logging for the risk analysis engines, with per-run analysis context."""
from __future__ import annotations

import json
import logging
import logging.config
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseSettings):
    """Log level, output stream and JSON layout, read from LOG_* variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = Field(default="INFO", alias="LOG_LEVEL")
    stream: str = Field(default="stderr", alias="LOG_STREAM")
    json_indent: Optional[int] = Field(default=None, alias="LOG_JSON_INDENT")

    @field_validator("level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("stream")
    @classmethod
    def _known_stream(cls, value: str) -> str:
        value = value.lower()
        if value not in ("stdout", "stderr"):
            raise ValueError("LOG_STREAM must be 'stdout' or 'stderr'")
        return value


# Project, run id and operation of the analysis currently executing
_ANALYSIS_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("analysis_context", default={})
_PASSTHROUGH_KWARGS = {"exc_info", "stack_info", "stacklevel", "extra"}
_configured = False


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, event and context."""

    def __init__(self, *, indent: Optional[int] = None) -> None:
        super().__init__()
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(_ANALYSIS_CONTEXT.get())
        payload.update(getattr(record, "context_data", None) or {})

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, indent=self.indent, default=str)


def setup_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """Route the root logger through JSONFormatter; later calls are no-ops."""

    global _configured

    config = config or LoggingConfig()
    if _configured:
        return config

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JSONFormatter, "indent": config.json_indent},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "level": config.level,
                "stream": f"ext://sys.{config.stream}",
            },
        },
        "root": {"handlers": ["default"], "level": config.level},
    })

    _configured = True
    return config


class StructuredLogger(logging.LoggerAdapter):
    """Adapter turning keyword arguments into JSON fields: log.info("event", risks=3)."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(logger, extra or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        return StructuredLogger(self.logger, {**self.extra, **fields})

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple:
        fields = dict(self.extra)
        for key in [key for key in kwargs if key not in _PASSTHROUGH_KWARGS]:
            fields[key] = kwargs.pop(key)

        extra = kwargs.setdefault("extra", {})
        extra["context_data"] = {**extra.get("context_data", {}), **fields}
        return msg, kwargs


def get_logger(name: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name))


def bind_analysis_context(**values: Any) -> None:
    """Attach analysis-run fields to every later record; None values are skipped."""

    context = dict(_ANALYSIS_CONTEXT.get())
    context.update({key: value for key, value in values.items() if value is not None})
    _ANALYSIS_CONTEXT.set(context)


def clear_analysis_context(*keys: str) -> None:
    """Drop the named fields, or the whole analysis context when none are given."""

    if not keys:
        _ANALYSIS_CONTEXT.set({})
        return

    context = dict(_ANALYSIS_CONTEXT.get())
    for key in keys:
        context.pop(key, None)
    _ANALYSIS_CONTEXT.set(context)


__all__ = [
    "JSONFormatter",
    "LoggingConfig",
    "StructuredLogger",
    "bind_analysis_context",
    "clear_analysis_context",
    "get_logger",
    "setup_logging",
]
