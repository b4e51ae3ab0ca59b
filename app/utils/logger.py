"""
Logging Utility.

``setup_logging`` configures the console output of the API process.
``StructuredLogger`` renders records as JSON objects and is used by the
change feed on both sides, where every record carries the user it is about.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO"):
    """Send records of ``level`` and above to stdout."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, stream=sys.stdout)


class StructuredLogger:
    """Logger adapter emitting one JSON object per record."""

    def __init__(self, name: str, **context: Any):
        """
        Args:
            name: Logger name, usually the module's __name__
            **context: Fields added to every record
        """
        self.logger = logging.getLogger(name)
        self.context: Dict[str, Any] = context

    def bind(self, **context: Any) -> "StructuredLogger":
        """A logger for the same name whose records also carry ``context``."""
        return StructuredLogger(self.logger.name, **{**self.context, **context})

    def render(self, level: int, message: str, fields: Dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "logger": self.logger.name,
            "message": message,
        }
        record.update(self.context)
        record.update(fields)
        return json.dumps(record, default=str)

    def log(self, level: int, message: str, exc_info: bool = False, **fields: Any):
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self.render(level, message, fields), exc_info=exc_info)

    def debug(self, message: str, **fields: Any):
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any):
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any):
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any):
        self.log(logging.ERROR, message, **fields)

    def exception(self, message: str, **fields: Any):
        """Log at ERROR with the active exception's traceback."""
        self.log(logging.ERROR, message, exc_info=True, **fields)


def get_logger(name: str, **context: Any) -> StructuredLogger:
    return StructuredLogger(name, **context)
