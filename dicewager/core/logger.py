"""
Centralized logging for Dice Wager.
Colored console output, JSON lines for log shippers, optional rotating file.
"""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "dicewager"

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_RESET = "\033[0m"
_DIM = "\033[90m"
_NAME = "\033[96m"


def _extra_fields(record: logging.LogRecord) -> dict:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class PlainFormatter(logging.Formatter):
    """`time | LEVEL | logger | message`, with any traceback on the following lines."""

    def paint(self, text: str, color: str) -> str:
        return text

    def level_color(self, record: logging.LogRecord) -> str:
        return ""

    def format(self, record):
        timestamp = self.paint(self.formatTime(record, "%Y-%m-%d %H:%M:%S"), _DIM)
        level = self.paint(f"{record.levelname:<8}", self.level_color(record))
        name = self.paint(record.name, _NAME)
        line = f"{timestamp} | {level} | {name} | {record.getMessage()}"

        extras = _extra_fields(record)
        if extras:
            line += " " + self.paint(" ".join(f"{k}={v}" for k, v in extras.items()), _DIM)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ColoredFormatter(PlainFormatter):
    """Console variant of PlainFormatter with one ANSI color per level."""

    LEVEL_COLORS = {
        logging.DEBUG: _DIM,
        logging.INFO: "\033[92m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[95m",
    }

    def paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if color else text

    def level_color(self, record: logging.LogRecord) -> str:
        return self.LEVEL_COLORS.get(record.levelno, "")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, extras merged in at the top level."""

    def format(self, record):
        payload = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(_extra_fields(record))
        return json.dumps(payload, default=str)


FORMATTERS = {
    "color": ColoredFormatter,
    "plain": PlainFormatter,
    "json": JsonFormatter,
}


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_to_file: bool = False,
    log_file_path: Optional[Path] = None,
    max_file_size: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    formatter: str = "color",
) -> logging.Logger:
    """
    Configure the named logger with a console handler and, optionally, a
    size-rotated plain-text file next to it.

    `formatter` picks the console format from FORMATTERS; unknown names fall
    back to "color". Calling this again replaces the handlers it added before.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(FORMATTERS.get(formatter, ColoredFormatter)())
    logger.addHandler(console)

    if log_to_file:
        path = Path(log_file_path or "data/app.log")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                path, maxBytes=max_file_size, backupCount=backup_count
            )
        except OSError as e:
            logger.warning(f"File logging disabled, cannot open {path}: {e}")
        else:
            file_handler.setFormatter(PlainFormatter())
            logger.addHandler(file_handler)

    # Records stay out of the root logger
    logger.propagate = False
    return logger


_app_logger: Optional[logging.Logger] = None


def get_logger(name: str = None) -> logging.Logger:
    """Child of the `dicewager` logger, e.g. get_logger("engine") -> dicewager.engine."""
    global _app_logger
    if _app_logger is None:
        _app_logger = setup_logger()
    return _app_logger.getChild(name) if name else _app_logger


def init_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    formatter: str = "color",
    log_file_path: Optional[Path] = None,
):
    """Configure logging once at startup from the `logging` config section."""
    global _app_logger
    _app_logger = setup_logger(
        level=level,
        log_to_file=log_to_file,
        formatter=formatter,
        log_file_path=log_file_path,
    )
    _app_logger.debug(f"Logging initialized at {level} level")
