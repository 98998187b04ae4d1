"""
Append-only diagnostic log for hook invocations.

Hooks run as short-lived processes whose stdout belongs to the host, so
diagnostics go to a JSON-lines file under .claude/logs/ instead. The log is
off unless `settings.debug` is true or CLAUDE_SKILLS_DEBUG is set; when off,
the package logger only has a NullHandler.

Every module logs through logging.getLogger(__name__); DebugLogger.log() adds
a category (activation, state, perf, io, error) and structured data.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from claude_skill_runtime.config import logs_dir

PACKAGE_LOGGER = "claude_skill_runtime"
LOG_FILENAME = "skill-activation.log"
MAX_BYTES = 1024 * 1024
BACKUP_COUNT = 3

DEBUG_ENV = "CLAUDE_SKILLS_DEBUG"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: ts, level, category, message, data."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "category": getattr(record, "category", record.name.rsplit(".", 1)[-1]),
            "message": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def debug_enabled_from_env() -> bool:
    return os.environ.get(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


class DebugLogger:
    """Category-tagged logger bound to one project's log file."""

    def __init__(self, log_file: Optional[Path] = None):
        self.log_file = log_file
        self._logger = logging.getLogger(PACKAGE_LOGGER)

    @property
    def enabled(self) -> bool:
        return self.log_file is not None

    def log(self, category: str, message: str, **data) -> None:
        if not self.enabled:
            return
        self._logger.debug(message, extra={"category": category, "data": data})

    def error(self, message: str, exc: Optional[BaseException] = None, **data) -> None:
        if exc is not None:
            data.setdefault("error", f"{type(exc).__name__}: {exc}")
        self._logger.error(
            message,
            exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
            extra={"category": "error", "data": data},
        )


def _remove_own_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, "_skill_runtime", False):
            logger.removeHandler(handler)
            handler.close()


def configure_debug_log(project_dir: Optional[Path], enabled: bool = False) -> DebugLogger:
    """
    Point the package logger at <project>/.claude/logs/skill-activation.log.

    Args:
        project_dir: Project root (None disables file logging)
        enabled: settings.debug; the CLAUDE_SKILLS_DEBUG env var also enables

    Returns:
        DebugLogger for the configured file (disabled if logging is off or
        the log directory cannot be created)
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    _remove_own_handlers(logger)
    logger.propagate = False

    if project_dir is None or not (enabled or debug_enabled_from_env()):
        null = logging.NullHandler()
        null._skill_runtime = True  # type: ignore[attr-defined]
        logger.addHandler(null)
        return DebugLogger(None)

    log_file = logs_dir(project_dir) / LOG_FILENAME
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
    except OSError:
        null = logging.NullHandler()
        null._skill_runtime = True  # type: ignore[attr-defined]
        logger.addHandler(null)
        return DebugLogger(None)

    handler.setFormatter(JsonLineFormatter())
    handler._skill_runtime = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return DebugLogger(log_file)
