"""Logging setup for expansion sessions.

Three rotating files live under ``log_dir``:

- ``novel_expander.log``: everything at the configured level
- ``llm_calls.log``: backend traffic from the generation client, always DEBUG
- ``session.log``: phase transitions, cycles and batches from ``workflow``

The console handler is off during interactive sessions so log lines do not
tear through the live chapter stream; ``--verbose`` turns it back on.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAIN_LOG = "novel_expander.log"
LLM_LOG = "llm_calls.log"
SESSION_LOG = "session.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# Loggers with their own file, below the root file
DEDICATED_LOGS = {
    "tools.generation_client": LLM_LOG,
    "workflow": SESSION_LOG,
}

# Chatty third-party loggers held at WARNING unless debugging
QUIET_LOGGERS = ("claude_agent_sdk", "langgraph", "httpx", "asyncio")


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        str(path), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> Path:
    """Configure root, backend and session logging. Safe to call again.

    Args:
        level: Root level (logging.DEBUG with ``--verbose``).
        log_dir: Directory for the rotating files. Defaults to ./data/logs.
        console_enabled: Whether to also log to stderr.

    Returns:
        The resolved log directory.
    """
    log_dir = Path(log_dir or "./data/logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _close_handlers(root_logger)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating(log_dir / MAIN_LOG, level, formatter))

    for name, filename in DEDICATED_LOGS.items():
        dedicated = logging.getLogger(name)
        _close_handlers(dedicated)
        dedicated.addHandler(_rotating(log_dir / filename, logging.DEBUG, formatter))
        dedicated.setLevel(logging.DEBUG)

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)
    return log_dir
