# logging_config.py
import logging
import logging.config
import logging.handlers
from pathlib import Path
from datetime import datetime
import json
import contextvars

# Per-request identifier (kept in a ContextVar)
_request_id_ctx = contextvars.ContextVar("request_id", default="-")

class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get("-")
        return True

def set_request_id(req_id: str):
    _request_id_ctx.set(req_id)

def get_logger(name: str = __name__) -> logging.Logger:
    return logging.getLogger(name)

LOG_DIR = Path("logs")

def build_dict_config(json_fmt: bool = False) -> dict:
    fmt = (
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s",'
        '"request_id":"%(request_id)s","msg":"%(message)s"}'
        if json_fmt
        else '%(asctime)s | %(levelname)s | %(name)s | rid=%(request_id)s | %(message)s'
    )

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": fmt,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
            },
            "file_app": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
                "filename": str(LOG_DIR / "app.log"),
                "when": "midnight",
                "interval": 1,
                "backupCount": 30,
                "encoding": "utf-8",
            },
            "file_ai_gateway": {
                "class": "logging.handlers.TimedRotatingFileHandler",
                "level": "INFO",
                "formatter": "default",
                "filters": ["request_id"],
                "filename": str(LOG_DIR / "ai_gateway.log"),
                "when": "midnight",
                "interval": 1,
                "backupCount": 30,
                "encoding": "utf-8",
            },
        },
        "loggers": {
            # root logger: app-wide
            "": {
                "level": "INFO",
                "handlers": ["console", "file_app"],
            },
            # model calls, bans, cooldowns, cache activity
            "ai_gateway": {
                "level": "INFO",
                "handlers": ["console", "file_ai_gateway"],
                "propagate": False,
            },
            "uvicorn": {"level": "INFO"},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"level": "INFO"},
        },
    }

def setup_logging(json_fmt: bool = False):
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_dict_config(json_fmt=json_fmt))

# ===== AI gateway event helpers =====
def log_ai_event(event_type: str, details: dict, logger: logging.Logger | None = None):
    logger = logger or get_logger("ai_gateway")
    logger.info("AI_EVENT: %s", json.dumps({
        "timestamp": datetime.now().isoformat(),
        "event_type": event_type,
        "details": details
    }, ensure_ascii=False))

def log_model_attempt(model: str, attempt: int, success: bool,
                      latency_ms: float | None = None, error: str | None = None,
                      logger: logging.Logger | None = None):
    logger = logger or get_logger("ai_gateway")
    if success:
        logger.info("model call ok: %s attempt=%d latency=%.1fms", model, attempt, latency_ms or 0.0)
    else:
        logger.warning("model call failed: %s attempt=%d err=%s", model, attempt, error)

def log_operation_fallback(operation: str, reason: str, logger: logging.Logger | None = None):
    logger = logger or get_logger("ai_gateway")
    logger.warning("operation fallback: %s reason=%s", operation, reason)
