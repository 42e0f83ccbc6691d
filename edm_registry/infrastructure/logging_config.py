"""Logging configuration.

Human-readable console logs for interactive use and JSON lines for
production. Rich renders console output for the CLI.
"""

import json
import logging
import sys
from typing import Any, Dict

from rich.logging import RichHandler

from edm_registry.domain.models import utcnow

# LogRecord attributes that are not user-supplied ``extra`` fields
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line.

    Values passed through ``extra=`` (e.g. the entity and rule of a
    rejected write) are carried as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RESERVED and key not in log_data:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(use_json: bool = False, log_level: str = "INFO", rich_console: bool = False) -> None:
    """Configure the root logger.

    Parameters:
        use_json: Use JSON formatting (for production)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        rich_console: Render console output with Rich (for the CLI)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if use_json:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
    elif rich_console:
        handler = RichHandler(show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
    handler.setLevel(level)
    root_logger.addHandler(handler)

    # Retry chatter from tenacity is reported through our own warnings
    logging.getLogger("tenacity").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
