"""
Logging configuration.

Console output for development, rotating files plus a daily audit log for
security-relevant events (logins, verification codes, config changes).
"""
import sys
import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from app.core.config import settings

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"
SIMPLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

MAIN_LOG_FILE = "alpuslinks.log"
ERROR_LOG_FILE = "error.log"
AUDIT_LOG_FILE = "audit.log"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "passlib": logging.ERROR,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "celery.redirected": logging.WARNING,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        task_id = getattr(record, "task_id", None)
        if task_id:
            entry["task_id"] = task_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy; file handlers share the same record
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{self.COLORS.get(record.levelname, '')}{record.levelname}{self.RESET}"
        return super().format(colored)


class AuditLogFilter(logging.Filter):
    """Pass only security and configuration related records"""

    AUDIT_KEYWORDS = (
        "login",
        "logout",
        "2fa",
        "verification",
        "token",
        "password",
        "config",
        "permission",
        "access",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage().lower()
        return any(keyword in message for keyword in self.AUDIT_KEYWORDS)


def _file_formatter(json_format: bool) -> logging.Formatter:
    return JSONFormatter() if json_format else logging.Formatter(DETAILED_FORMAT)


def _console_handler(json_format: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    elif sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(SIMPLE_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
    return handler


def _file_handlers(log_dir: Path, json_format: bool, max_bytes: int, backup_count: int):
    main = RotatingFileHandler(log_dir / MAIN_LOG_FILE, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    main.setLevel(logging.INFO)
    main.setFormatter(_file_formatter(json_format))

    errors = RotatingFileHandler(log_dir / ERROR_LOG_FILE, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    errors.setLevel(logging.ERROR)
    errors.setFormatter(_file_formatter(json_format))

    # Audit trail rotates daily and is kept for a month
    audit = TimedRotatingFileHandler(log_dir / AUDIT_LOG_FILE, when="midnight", backupCount=30, encoding="utf-8")
    audit.setLevel(logging.INFO)
    audit.setFormatter(logging.Formatter(DETAILED_FORMAT))
    audit.addFilter(AuditLogFilter())

    return [main, errors, audit]


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True,
    json_format: bool = False,
    log_dir: str = "logs",
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger, replacing any handlers already installed.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_to_file: write main, error and audit files under ``log_dir``
        log_to_console: write to stdout
        json_format: emit JSON lines instead of plain text
        max_bytes: rotation size of the main and error files
        backup_count: rotated files to keep
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    if log_to_console:
        root.addHandler(_console_handler(json_format))

    if log_to_file:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        for handler in _file_handlers(path, json_format, max_bytes, backup_count):
            root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    root.info(f"Logging initialized at {logging.getLevelName(root.level)}")


class TaskLogger(logging.LoggerAdapter):
    """Prefixes records with the Celery task id and exposes it as ``task_id``"""

    def process(self, msg, kwargs):
        task_id = self.extra.get("task_id")
        kwargs.setdefault("extra", {}).update(self.extra)
        if task_id:
            msg = f"[{task_id}] {msg}"
        return msg, kwargs


def get_task_logger(task_name: str, task_id: Optional[str] = None) -> TaskLogger:
    return TaskLogger(logging.getLogger(f"task.{task_name}"), {"task_id": task_id})


def init_logging():
    """Called once at application and worker start"""
    setup_logging(
        level=settings.LOG_LEVEL,
        log_to_file=settings.LOG_TO_FILE,
        json_format=settings.LOG_JSON,
        log_dir=settings.LOG_DIR,
    )
