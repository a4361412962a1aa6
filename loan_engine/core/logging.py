import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from loan_engine.core.context import get_loan_id, get_request_id
from loan_engine.core.settings import get_settings


class RequestContextFilter(logging.Filter):
    """Inject request/loan ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.loan_id = get_loan_id()
        record.stream = getattr(record, "stream", "transactional")
        return True


# Optional structured fields callers pass through `extra=`.
LOG_FIELDS = (
    "event",
    "previous_state",
    "next_state",
    "version",
    "outcome",
    "duration_ms",
    "side_effect",
)


class JsonFormatter(logging.Formatter):
    """JSON lines with request/loan ids and any transition or timing fields."""

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "request_id": getattr(record, "request_id", "-"),
            "loan_id": getattr(record, "loan_id", "-"),
        }
        for field in LOG_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "transactional"},
                "side_effect_json": {"()": JsonFormatter, "stream_label": "side_effect"},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "json",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
                "side_effect": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "side_effect_json",
                    "filters": ["request_context"],
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level, "propagate": False},
                "loan_engine.side_effects": {
                    "handlers": ["side_effect"],
                    "level": log_level,
                    "propagate": False,
                },
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.error": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s level=%s",
        settings.environment,
        log_level,
    )


def get_side_effect_logger() -> logging.Logger:
    return logging.getLogger("loan_engine.side_effects")
