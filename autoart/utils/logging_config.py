"""Unified logging configuration for library callers and scripts.

Provides consistent logging across the pipeline stages:
    - Console and file handlers (file handler with optional rotation)
    - JSON output mode for ingestion
    - Contextual fields (run, layer, stage) carried by contextvars
    - Warning capture (Python warnings → logging)

Public API:
    setup_logging(log_level="INFO", context={"run": "demo"})
    get_logger(name)
    push_context(layer="FF0000")
    pop_context(keys=["layer"])

Format examples:
    Human: 2026-03-02T09:15:04.120Z | INFO     | layer=FF0000 | Generated 12 action sets
    JSON: {"t": "2026-03-02T09:15:04.120000+00:00", "lvl": "INFO", "layer": "FF0000", "msg": "..."}

The library itself never calls setup_logging; it only logs through module
loggers. Context is per thread (each layer worker pushes its own fields).
"""

import contextvars
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


_context_var = contextvars.ContextVar('autoart_logging_context', default={})

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'

# Handlers installed by setup_logging, removed again on reconfiguration
_installed_handlers: List[logging.Handler] = []


class ContextFormatter(logging.Formatter):
    """Formatter that appends the current context fields.

    Parameters
    ----------
    fmt_mode : str
        "human" (default) or "json"
    use_color : bool
        Colorize the level name when writing to a TTY
    """

    def __init__(self, fmt_mode: str = "human", use_color: bool = True):
        super().__init__()
        if fmt_mode not in ("human", "json"):
            raise ValueError(f"Unknown format mode: {fmt_mode}. Use 'human' or 'json'.")
        self.fmt_mode = fmt_mode
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = _context_var.get()
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        if self.fmt_mode == "json":
            return self._format_json(record, ts, context)
        return self._format_human(record, ts, context)

    def _format_json(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        payload = {
            't': ts.isoformat(),
            'lvl': record.levelname,
            'name': record.name,
            'pid': os.getpid(),
            'thread': record.threadName,
        }
        payload.update(context)
        payload['msg'] = record.getMessage()
        if record.exc_info:
            payload['exc'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

    def _format_human(self, record: logging.LogRecord, ts: datetime, context: dict) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{_LEVEL_COLORS.get(record.levelname, '')}{level}{_RESET}"

        parts = [ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + 'Z', '|', level, '|']
        if context:
            parts.append(' '.join(f"{k}={v}" for k, v in context.items()))
            parts.append('|')
        parts.append(record.getMessage())

        line = ' '.join(parts)
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def _file_handler(log_file: str, rotate: Optional[Dict[str, Any]], json_format: bool) -> logging.Handler:
    """Create a file handler, size-rotated when rotate is given."""
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    if rotate:
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=rotate.get('max_bytes', 10_000_000),
            backupCount=rotate.get('backup_count', 3),
        )
    else:
        handler = logging.FileHandler(log_file)
    handler.setFormatter(ContextFormatter("json" if json_format else "human", use_color=False))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    *,
    json: bool = False,
    color: bool = True,
    to_stderr: bool = True,
    rotate: Optional[Dict[str, Any]] = None,
    capture_warnings: bool = True,
    context: Optional[Dict[str, Any]] = None,
) -> List[logging.Handler]:
    """Configure the root logger (idempotent).

    Parameters
    ----------
    log_level : str
        "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL"
    log_file : str, optional
        Log file path; None for no file logging
    json : bool
        JSON lines in the file handler, default False
    color : bool
        ANSI colors on the console, default True
    to_stderr : bool
        Log to stderr, default True
    rotate : dict, optional
        Size rotation for the file handler: {"max_bytes": ..., "backup_count": ...}
    capture_warnings : bool
        Route Python warnings into logging, default True
    context : dict, optional
        Initial contextual fields, e.g. {"run": "preview"}

    Returns
    -------
    list of logging.Handler
        Handlers installed on the root logger

    Notes
    -----
    Repeated calls replace the handlers installed by the previous call and
    leave foreign handlers (e.g. pytest's caplog) untouched.
    """
    root = logging.getLogger()
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()

    root.setLevel(level)

    if to_stderr:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(ContextFormatter("human", use_color=color))
        _installed_handlers.append(console)
    if log_file:
        _installed_handlers.append(_file_handler(log_file, rotate, json))

    for handler in _installed_handlers:
        root.addHandler(handler)

    if context:
        push_context(**context)
    if capture_warnings:
        route_warnings()

    return list(_installed_handlers)


def get_logger(name: str) -> logging.Logger:
    """Get logger by name (typically __name__)."""
    return logging.getLogger(name)


def push_context(**kwargs) -> None:
    """Add contextual fields to all subsequent records of this thread.

    Examples
    --------
    >>> push_context(layer="FF0000")
    >>> logger.info("Chunked")  # → "... | layer=FF0000 | Chunked"
    """
    _context_var.set({**_context_var.get(), **kwargs})


def pop_context(keys: Optional[List[str]] = None) -> None:
    """Remove contextual fields; all of them when keys is None."""
    if keys is None:
        _context_var.set({})
        return
    current = dict(_context_var.get())
    for key in keys:
        current.pop(key, None)
    _context_var.set(current)


def current_context() -> Dict[str, Any]:
    """Snapshot of the active contextual fields."""
    return dict(_context_var.get())


def route_warnings() -> None:
    """Route Python warnings to the 'py.warnings' logger."""
    logging.captureWarnings(True)
    logging.getLogger('py.warnings').setLevel(logging.WARNING)
