import json
import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .config import LogConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_MAX_CACHED_LOGGERS = 64

_cache_lock = threading.Lock()
# name -> (resolved log path, logger); insertion order doubles as LRU order.
_loggers: Dict[str, Tuple[Path, logging.Logger]] = {}


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _file_handler(log_path: Path, log_config: LogConfig) -> RotatingFileHandler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_rotating_logger(name: str, log_config: LogConfig) -> logging.Logger:
    """
    Return the logger called ``name``, writing only to ``log_config.path``.

    Hosts name loggers per campaign root (``campaigns[<root>]`` for the API,
    ``cli[<root>]`` for the CLI), so two roots never share a file. Asking for
    a known name with a different path moves that logger to the new file.
    The least recently requested loggers beyond a fixed cap are detached
    from their files.
    """
    log_path = Path(log_config.path).resolve()
    with _cache_lock:
        cached = _loggers.pop(name, None)
        if cached is not None and cached[0] == log_path:
            _loggers[name] = cached
            return cached[1]

        logger = logging.getLogger(name)
        _close_handlers(logger)
        logger.addHandler(_file_handler(log_path, log_config))
        logger.setLevel(logging.INFO)
        logger.propagate = False
        _loggers[name] = (log_path, logger)

        while len(_loggers) > _MAX_CACHED_LOGGERS:
            oldest = next(iter(_loggers))
            _, evicted = _loggers.pop(oldest)
            _close_handlers(evicted)
        return logger


def _render(message: str, args: Tuple[Any, ...]) -> str:
    if not args:
        return message
    try:
        return message % args
    except (TypeError, ValueError):
        return " ".join([message, *(str(arg) for arg in args)])


def safe_log(
    logger: logging.Logger,
    level: int,
    message: str,
    *args: Any,
    exc: Optional[BaseException] = None,
) -> None:
    """Log ``message % args``, falling back to joining them when they do not fit."""
    text = _render(message, args)
    if exc is not None:
        text = f"{text}: {exc}"
    logger.log(level, text)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured line: ``{"event": ..., <fields>}``."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    payload.update(fields)
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    try:
        message = json.dumps(payload, default=str, sort_keys=False)
    except (TypeError, ValueError):
        message = f"{event} {fields!r}"
    logger.log(level, message)
