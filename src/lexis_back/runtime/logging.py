"""
Lexis logging infrastructure.

Two sinks are installed on the ``lexis_back`` logger:

- ``<log_dir>/lexis.log``: JSON Lines, one entry per record, with the
  ``extra={"context": {...}}`` payload kept as structured data
- stderr: a short ``time [Component] LEVEL: message`` line rendered through
  rich, so NO_COLOR and non-terminal output are handled for us

Modules log through ``logging.getLogger(__name__)`` and get the last dotted
segment of their name as component; ``get_logger("Plan")`` pins an explicit one.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.text import Text

ROOT_LOGGER_NAME = "lexis_back"

LEVEL_STYLES = {
    logging.DEBUG: "cyan",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold magenta",
}


def component_of(record: logging.LogRecord) -> str:
    """Explicit ``component`` attribute, else ``lexis_back.runtime.fetch_plan`` -> ``fetch_plan``."""
    return getattr(record, "component", None) or record.name.rsplit(".", 1)[-1]


class JSONLFormatter(logging.Formatter):
    """
    One JSON object per record.

    {"timestamp":"2024-01-15T10:30:45.123000Z","level":"DEBUG","component":"Plan","message":"...","context":{...}}

    Warnings and above also carry their source location; exceptions carry
    their type and message.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "component": component_of(record),
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.levelno >= logging.WARNING:
            entry["source"] = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {"type": record.exc_info[0].__name__, "message": str(record.exc_info[1])}
        return json.dumps(entry, default=str)


class ConsoleHandler(logging.Handler):
    """Writes records to stderr through a rich console."""

    def __init__(self, level: int = logging.NOTSET):
        super().__init__(level)
        self.console = Console(stderr=True, highlight=False)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = Text()
            line.append(datetime.fromtimestamp(record.created).strftime("%H:%M:%S"), style="dim")
            line.append(f" [{component_of(record)}]", style="blue")
            if record.levelno != logging.INFO:
                line.append(f" {record.levelname}:", style=LEVEL_STYLES.get(record.levelno, ""))
            line.append(f" {record.getMessage()}")
            self.console.print(line, soft_wrap=True)
        except Exception:
            self.handleError(record)


class _ComponentFilter(logging.Filter):
    def __init__(self, component: str):
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "component"):
            record.component = self.component
        return True


_loggers: dict[str, logging.Logger] = {}


def setup_logging(
    log_dir: Path | str = ".lexis/logs",
    level: int | str = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Install the JSONL file and console handlers, replacing earlier ones.

    Args:
        log_dir: Directory for ``lexis.log`` (created if missing)
        level: Minimum level, as an int or a level name
        max_bytes: Rotation size of the log file
        backup_count: Rotated files to keep

    Returns:
        Path to the log file
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / "lexis.log"

    file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setFormatter(JSONLFormatter())

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    root_logger.addHandler(ConsoleHandler())
    root_logger.addHandler(file_handler)

    root_logger.debug(
        "Logging initialized",
        extra={"component": "Lexis", "context": {"log_file": str(log_file)}},
    )
    return log_file


def get_logger(component: str) -> logging.Logger:
    """Logger whose records are tagged with ``component`` (e.g. "Plan", "Repo", "CLI")."""
    if component not in _loggers:
        logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component.lower()}")
        logger.addFilter(_ComponentFilter(component))
        _loggers[component] = logger
    return _loggers[component]
