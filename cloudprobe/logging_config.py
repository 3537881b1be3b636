"""
Logging configuration for the probe: console, progress line and execution log
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Optional


class InteractiveOnlyFilter(logging.Filter):
    """Filter to drop progress line updates when stdout is not a terminal."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Only let progress records through on a TTY."""
        stream = getattr(sys.stdout, "isatty", None)
        return bool(stream and stream())


class ProgressHandler(logging.StreamHandler):
    """Stream handler that rewrites the current terminal line."""

    terminator = "\r"


def get_logging_config(
    execution_log: Optional[str] = None, level: str = "INFO"
) -> Dict[str, Any]:
    """
    Get logging configuration.

    Args:
        execution_log: Append-only file receiving one line per executed action.
            When None the execution log is discarded.
        level: Level of the cloudprobe loggers
    """
    handlers: Dict[str, Any] = {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        },
        "progress": {
            "()": ProgressHandler,
            "formatter": "plain",
            "stream": "ext://sys.stdout",
            "filters": ["interactive_only"],
        },
    }
    if execution_log:
        handlers["execlog"] = {
            "class": "logging.FileHandler",
            "formatter": "plain",
            "filename": execution_log,
            "mode": "a",
            "encoding": "utf-8",
        }
    else:
        handlers["execlog"] = {"class": "logging.NullHandler"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "interactive_only": {
                "()": InteractiveOnlyFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "plain": {
                "format": "%(message)s"
            }
        },
        "handlers": handlers,
        "loggers": {
            "cloudprobe": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "cloudprobe.progress": {
                "handlers": ["progress"],
                "level": "INFO",
                "propagate": False
            },
            "cloudprobe.execlog": {
                "handlers": ["execlog"],
                "level": "INFO",
                "propagate": False
            },
            "httpx": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": "INFO",
            "handlers": ["default"]
        }
    }


def configure_logging(execution_log: Optional[str] = None, level: str = "INFO") -> None:
    """Apply the logging configuration."""
    logging.config.dictConfig(get_logging_config(execution_log, level))
