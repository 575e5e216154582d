"""
Logging for imagefile-api.

Application code logs through structlog; events are snake_case names with
key/value context and are rendered as one JSON object per line (or as
coloured console lines in debug mode). Records from libraries (uvicorn,
SQLAlchemy, Pillow) go through python-json-logger so every line on stdout
is JSON. Warnings and errors go to stderr, everything else to stdout.

The current request's trace ID lives in a context variable so it follows the
request into Starlette's worker threads.
"""

import logging
import logging.config
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict
from pythonjsonlogger import jsonlogger


_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

# Library loggers and the level below which their records are dropped
LIBRARY_LEVELS = {
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
    "PIL": "WARNING",
}


def set_trace_id(trace_id: str) -> None:
    _trace_id.set(trace_id)


def get_trace_id() -> Optional[str]:
    return _trace_id.get()


def clear_trace_id() -> None:
    _trace_id.set(None)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor adding service identity and the trace ID."""
    from imagefile.core.config import settings

    event_dict["service"] = settings.SERVICE_NAME
    event_dict["version"] = settings.VERSION

    trace_id = get_trace_id()
    if trace_id:
        event_dict["trace_id"] = trace_id

    return event_dict


class LibraryJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines for plain stdlib records, shaped like the structlog events."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["event"] = log_record.pop("message", record.getMessage())
        log_record["level"] = record.levelname.lower()
        log_record["logger"] = record.name
        log_record.setdefault("timestamp", self.formatTime(record))

        trace_id = get_trace_id()
        if trace_id:
            log_record["trace_id"] = trace_id


class BelowLevelFilter(logging.Filter):
    """Pass records strictly below a level (keeps stdout free of warnings and errors)."""

    def __init__(self, level: str = "WARNING"):
        super().__init__()
        self.levelno = logging.getLevelName(level)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.levelno


def get_logging_config(log_level: str, json_logs: bool = True) -> Dict[str, Any]:
    """Build the stdlib dictConfig.

    The "imagefile" logger receives already rendered structlog events and only
    prints the message; the root logger formats library records itself.
    """
    library_formatter = (
        {"()": LibraryJsonFormatter}
        if json_logs
        else {"format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"}
    )

    def handlers(formatter: str) -> Dict[str, Dict[str, Any]]:
        return {
            f"{formatter}_stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": formatter,
                "filters": ["below_warning"],
            },
            f"{formatter}_stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": formatter,
                "level": "WARNING",
            },
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rendered": {"format": "%(message)s"},
            "library": library_formatter,
        },
        "filters": {
            "below_warning": {"()": BelowLevelFilter},
        },
        "handlers": {**handlers("rendered"), **handlers("library")},
        "loggers": {
            "imagefile": {
                "handlers": ["rendered_stdout", "rendered_stderr"],
                "level": log_level,
                "propagate": False,
            },
            **{name: {"level": level} for name, level in LIBRARY_LEVELS.items()},
        },
        "root": {
            "handlers": ["library_stdout", "library_stderr"],
            "level": log_level,
        },
    }


def configure_structlog(debug: bool = False, json_logs: bool = True) -> None:
    if debug and not json_logs:
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            add_app_context,
            *renderers,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_logging(debug: bool = False, json_logs: bool = True) -> None:
    """Configure stdlib logging and structlog; call once at startup."""
    from imagefile.core.config import settings

    log_level = "DEBUG" if debug else settings.LOG_LEVEL.upper()
    logging.config.dictConfig(get_logging_config(log_level, json_logs=json_logs))
    configure_structlog(debug=debug, json_logs=json_logs)

    get_logger(__name__).info("logging_configured", log_level=log_level, json_logs=json_logs)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
