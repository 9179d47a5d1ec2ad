# logging_utils.py
# Central structured logging for Roster-Intel (Loki-ready / Loki-friendly)

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Per-request correlation id (attached via middleware in api.py)
_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

ROOT_LOGGER_NAME = "rosterintel"

# Built-in LogRecord fields that must never be overwritten
_RESERVED_LOG_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}


class LokiJSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON for Loki ingestion.

    Each log line looks like:
        {
            "ts": "...",
            "level": "INFO",
            "logger": "rosterintel.pipeline",
            "service": "rosterintel",
            "env": "dev",
            "message": "...",
            "request_id": "...",
            ... plus all structured fields ...
        }
    """

    def __init__(self, service: str = ROOT_LOGGER_NAME, env: str = "dev") -> None:
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "env": self.env,
            "message": record.getMessage(),
        }

        # Attach correlation ID if present
        rid = _request_id.get()
        if rid:
            payload["request_id"] = rid

        # Merge user structured data safely
        for key, value in record.__dict__.items():
            if key.startswith("_"):
                continue
            if key in payload:
                continue
            if key in _RESERVED_LOG_FIELDS:
                continue

            payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(
    level: str = "INFO",
    service: str = ROOT_LOGGER_NAME,
    env: str = "dev",
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the service logger once for the whole process and return it.

    Output -> JSON to stdout, plus ``log_file`` for Promtail/Loki when given.
    Levels come from the caller, never from the environment directly.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    # Prevent double config
    if getattr(logger, "_loki_configured", False):
        logger.setLevel(level)
        return logger

    logger.setLevel(level)
    logger.propagate = False

    formatter = LokiJSONFormatter(service=service, env=env)

    # 1) STDOUT (uvicorn/console)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    # 2) FILE for Promtail/Loki
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # If file logging fails, keep stdout logging only
            logger.error("Failed to set up file logging: %s", e)

    logger._loki_configured = True  # type: ignore[attr-defined]
    return logger


def component_logger(name: str, parent: Optional[logging.Logger] = None) -> logging.Logger:
    """Child logger for a component, e.g. ``rosterintel.pipeline``."""
    base = parent or logging.getLogger(ROOT_LOGGER_NAME)
    return base.getChild(name)


def new_request_id() -> str:
    rid = uuid.uuid4().hex
    _request_id.set(rid)
    return rid


def set_request_id(rid: Optional[str]) -> None:
    _request_id.set(rid)


def current_request_id() -> Optional[str]:
    return _request_id.get()


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """
    Structured logging helper.

    Ensures fields never collide with LogRecord built-ins.
    Automatically rewrites:
        filename → field_filename
        module   → field_module
        etc.
    """
    safe_fields: Dict[str, Any] = {}

    for key, value in fields.items():
        if key in _RESERVED_LOG_FIELDS:
            safe_fields[f"field_{key}"] = value
        else:
            safe_fields[key] = value

    logger.log(level, event, extra={"event": event, **safe_fields})


class RosterLogger:
    """Stage timer bound to a component logger and the current request id."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.timers: Dict[str, float] = {}

    def _key(self, name: str) -> str:
        rid = _request_id.get() or "global"
        return f"{rid}:{name}"

    def start_timer(self, name: str) -> None:
        self.timers[self._key(name)] = time.perf_counter()

    def end_timer(self, name: str) -> float:
        start = self.timers.pop(self._key(name), None)
        if start is None:
            return 0.0
        elapsed = time.perf_counter() - start
        log_event(
            self.logger,
            "stage_finished",
            level=logging.DEBUG,
            stage=name,
            duration_ms=int(elapsed * 1000),
        )
        return elapsed
