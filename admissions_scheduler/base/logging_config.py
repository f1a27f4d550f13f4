import logging
import sys
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

from admissions_scheduler.base.config import settings

LOG_DIR = Path(settings.LOG_DIR)

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Set by the request middleware; background jobs log with "-"
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


class RequestContextFilter(logging.Filter):
    """Stamps every record with the current request id and acting user."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


def get_formatter(use_json: bool, service: str) -> logging.Formatter:
    if use_json:
        return JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(request_id)s %(user_id)s %(message)s",
            rename_fields={"levelname": "level", "request_id": "requestId", "user_id": "userId"},
            static_fields={"service": service, "environment": settings.ENVIRONMENT},
        )
    return logging.Formatter(
        fmt=f"%(asctime)s | %(levelname)s | %(name)s | [svc={service} req=%(request_id)s user=%(user_id)s] | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _file_handler(log_file: str, formatter: logging.Formatter) -> logging.Handler:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(str(LOG_DIR / log_file), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: str = settings.LOG_LEVEL.upper(),
    use_json: bool = settings.ENABLE_JSON_LOGS,
    service: str = settings.SERVICE_NAME,
) -> logging.Logger:
    """
    Stdout handler plus an optional rotating file under LOG_DIR.

    Component loggers are children of the configured ones, e.g.
    ``logging.getLogger("scheduler.booking")`` writes through "scheduler".
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = get_formatter(use_json, service)
    context = RequestContextFilter()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(context)
    logger.addHandler(stream_handler)

    if log_file and settings.LOG_TO_FILE:
        file_handler = _file_handler(log_file, formatter)
        file_handler.addFilter(context)
        logger.addHandler(file_handler)

    return logger


# === Preconfigured loggers ===
app_logger = setup_logger("app", log_file="app.log")
scheduler_logger = setup_logger("scheduler", log_file="scheduler.log")
notification_logger = setup_logger("notifications", log_file="notifications.log")
