"""Logging setup for hosts embedding the Hippo assistant.

Library modules only ever call ``logging.getLogger(__name__)``; the host
calls :func:`setup_logging` (or :func:`setup_logging_from_settings`) once.
Every record is stamped with the chat it belongs to, taken from
:func:`chat_context`, so interleaved turns can be told apart in the log file.
"""

from __future__ import annotations

import contextlib
import contextvars
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any, Iterator

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "get_log_path",
    "chat_context",
    "current_chat_id",
]

LOG_FILE_NAME = "hippo.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | [%(chat_id)s] %(message)s"

_DEFAULT_LOG_DIR = Path.home() / ".hippo" / "logs"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_NO_CHAT = "-"
_CHAT_ID: contextvars.ContextVar[str] = contextvars.ContextVar("hippo_chat_id", default=_NO_CHAT)
_CONFIGURED = False
_LOG_PATH: Path | None = None


class _ChatIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "chat_id"):
            record.chat_id = _CHAT_ID.get()
        return True


@contextlib.contextmanager
def chat_context(chat_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block (and tasks it spawns) with ``chat_id``."""

    token = _CHAT_ID.set(chat_id)
    try:
        yield
    finally:
        _CHAT_ID.reset(token)


def current_chat_id() -> str | None:
    value = _CHAT_ID.get()
    return None if value == _NO_CHAT else value


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install a rotating ``hippo.log`` handler (plus stderr when ``console``) on the root logger.

    Repeated calls are no-ops unless ``force`` is set. Returns the log file path.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    resolved_level = _coerce_level(level)
    directory = _resolve_log_dir(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILE_NAME

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    chat_filter = _ChatIdFilter()

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(resolved_level)
        handler.setFormatter(formatter)
        handler.addFilter(chat_filter)

    logging.basicConfig(level=resolved_level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_third_party(resolved_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def setup_logging_from_settings(settings: Any, *, log_dir: Path | str | None = None, **kwargs: Any) -> Path:
    """Configure logging at DEBUG when ``settings.debug_logging`` is on, INFO otherwise."""

    level = logging.DEBUG if getattr(settings, "debug_logging", False) else logging.INFO
    return setup_logging(level, log_dir=log_dir, **kwargs)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    """Log file installed by the last :func:`setup_logging` call, if any."""

    return _LOG_PATH


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level {level!r}")
    return resolved


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get("HIPPO_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()


def _quiet_third_party(root_level: int) -> None:
    level = max(root_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
