"""Logging configuration for the scanner service."""

from __future__ import annotations

import logging.config
import os
from pathlib import Path
from typing import Any, Dict

_logging_configured = False

ROTATE_BYTES = 5 * 1024 * 1024
ROTATE_BACKUPS = 5

# Transport loggers of requests and google-cloud-vision; DEBUG there logs every
# connection and gRPC call made per scan.
QUIET_LOGGERS = ("urllib3", "google.auth", "google.api_core", "grpc")


def _rotating_file(path: Path, formatter: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": formatter,
        "filename": str(path),
        "maxBytes": ROTATE_BYTES,
        "backupCount": ROTATE_BACKUPS,
        "encoding": "utf-8",
        "delay": True,
    }


def build_logging_config(log_dir: Path, log_level: str) -> Dict[str, Any]:
    """Return a dictConfig mapping sharing uvicorn's formatters with the ``scanner`` loggers.

    ``SCANNER_LOG_LEVEL`` sets the application loggers independently of the
    uvicorn level. HTTP and Vision transport loggers are held at WARNING, or
    INFO when the application runs at DEBUG.
    """

    log_path = log_dir / os.getenv("UVICORN_LOG_FILE", "scanner.log")
    access_log_path = log_dir / os.getenv("UVICORN_ACCESS_LOG_FILE", "scanner-access.log")
    app_handlers = ["default", "file"]
    scanner_level = os.getenv("SCANNER_LOG_LEVEL", log_level).upper()
    quiet_level = "WARNING" if scanner_level != "DEBUG" else "INFO"

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s %(name)s: %(message)s",
                "use_colors": None,
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": "%(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s",
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
            "file": _rotating_file(log_path, "default"),
            "access_stream": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
            "access_file": _rotating_file(access_log_path, "access"),
        },
        "loggers": {
            "scanner": {"handlers": app_handlers, "level": scanner_level, "propagate": False},
            **{name: {"level": quiet_level} for name in QUIET_LOGGERS},
            "uvicorn": {"handlers": app_handlers, "level": log_level, "propagate": False},
            "uvicorn.error": {"handlers": app_handlers, "level": log_level, "propagate": False},
            "uvicorn.access": {
                "handlers": ["access_stream", "access_file"],
                "level": log_level,
                "propagate": False,
            },
        },
        "root": {"handlers": app_handlers, "level": log_level},
    }


def configure_logging() -> None:
    """Install stream and rotating file handlers once per process."""
    global _logging_configured
    if _logging_configured:
        return

    log_dir = Path(os.getenv("UVICORN_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_level = os.getenv("UVICORN_LOG_LEVEL", "INFO").upper()

    logging.config.dictConfig(build_logging_config(log_dir, log_level))
    _logging_configured = True


__all__ = ["build_logging_config", "configure_logging"]
