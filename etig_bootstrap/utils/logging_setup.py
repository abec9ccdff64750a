"""Logging for the bootstrap run: console plus a rotating ``bootstrap.log``.

Records emitted while a task runs carry ``task``/``step``/``http_status``
attributes (passed with ``extra=``). The text formatter prints them as a
``[task/step]`` prefix and the JSON formatter emits them as fields, so a log
shipper can filter one provisioning step without parsing messages.
"""

from __future__ import annotations

import json
import logging
import logging.config
import logging.handlers
import os
from pathlib import Path
from typing import Any, Dict, Optional


_CONFIGURED = False

CONTEXT_FIELDS = ("task", "step", "http_status")
LOG_FILENAME = "bootstrap.log"
DATEFMT = "%Y-%m-%d %H:%M:%S"


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if getattr(record, key, None) is not None}


class TaskFormatter(logging.Formatter):
    """Plain-text formatter adding a ``[task/step]`` tag when the record has one."""

    def format(self, record: logging.LogRecord) -> str:
        context = _context(record)
        tag = "/".join(str(context[key]) for key in ("task", "step") if key in context)
        record.context_tag = f"[{tag}] " if tag else ""
        return super().format(record)


class JsonFormatter(logging.Formatter):
    """Emit log records as structured JSON for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _should_enable_json(enable_json: Optional[bool]) -> bool:
    if enable_json is not None:
        return enable_json
    return os.getenv("ETIG_LOG_JSON", "").strip().lower() in {"1", "true", "yes", "on"}


def _log_directory(log_dir: Optional[str | Path]) -> Path:
    if log_dir is not None:
        return Path(log_dir)
    return Path(os.getenv("ETIG_LOG_DIR") or "logs")


def _build_config(log_dir: Path, enable_json: bool, level: str) -> Dict[str, Any]:
    text_formatter = {
        "()": "etig_bootstrap.utils.logging_setup.TaskFormatter",
        "format": "%(asctime)s %(levelname)s %(name)s : %(context_tag)s%(message)s",
        "datefmt": DATEFMT,
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": text_formatter,
            "json": {"()": "etig_bootstrap.utils.logging_setup.JsonFormatter", "datefmt": DATEFMT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "text",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "level": level,
                "formatter": "json" if enable_json else "text",
                "filename": str(log_dir / LOG_FILENAME),
                "maxBytes": 5 * 1024 * 1024,
                "backupCount": 3,
                "encoding": "utf-8",
            },
        },
        "root": {"level": level, "handlers": ["console", "file"]},
    }


def configure_logging(
    *,
    log_dir: Optional[str | Path] = None,
    enable_json: Optional[bool] = None,
    level: str = "INFO",
) -> None:
    """Install the console and file handlers once per process."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    log_path = _log_directory(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(_build_config(log_path, _should_enable_json(enable_json), level.upper()))

    # requests/urllib3 log every connection attempt while a service is still down
    for noisy_logger in ("urllib3", "requests", "charset_normalizer"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _CONFIGURED = True


def get_logger(component: str, *, level: Optional[int] = None) -> logging.Logger:
    """Return the ``etig_bootstrap.<component>`` logger without touching handlers."""

    logger = logging.getLogger(f"etig_bootstrap.{component}")
    if level is not None:
        logger.setLevel(level)
    return logger


__all__ = ["CONTEXT_FIELDS", "JsonFormatter", "TaskFormatter", "configure_logging", "get_logger"]
