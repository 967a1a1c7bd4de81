from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)

PAYPAL_LOGGER_NAME = "app.paypal"
_PAYPAL_HANDLER_ATTR = "_flux_paypal_log_path"

_RESERVED_RECORD_KEYS = set(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime", "request_id"}
_HTTP_FIELDS = ("path", "method", "status_code", "duration_ms", "remote_addr")


class RequestIdFilter(logging.Filter):
    """Attach request_id from contextvars to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.request_id = request_id_ctx_var.get() or "-"
        return True


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, str):
        return value[:5000]
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in list(value.items())[:100]}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in list(value)[:200]]
    return str(value)[:5000]


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple serialization
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        for field in _HTTP_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS or key in payload or key.startswith("_"):
                continue
            payload[key] = _json_safe(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(json_logs: bool = False) -> None:
    """Configure root logger with request-id aware formatter."""
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s")
        )

    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)


def configure_paypal_log(path: str) -> logging.Logger:
    """Attach the on-disk PayPal audit log to the ``app.paypal`` logger.

    Calling it again with the same path is a no-op; a different path replaces the previous file handler.
    """
    logger = logging.getLogger(PAYPAL_LOGGER_NAME)
    logger.setLevel(logging.INFO)
    resolved = str(Path(path).resolve())
    for existing in list(logger.handlers):
        attached_to = getattr(existing, _PAYPAL_HANDLER_ATTR, None)
        if attached_to == resolved:
            return logger
        if attached_to is not None:
            logger.removeHandler(existing)
            existing.close()
    try:
        Path(resolved).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(resolved, encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).warning("PayPal log file unavailable (%s): %s", resolved, exc)
        return logger
    setattr(handler, _PAYPAL_HANDLER_ATTR, resolved)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter("[%(asctime)s] [%(request_id)s] %(message)s"))
    logger.addHandler(handler)
    return logger
