"""
Unified logging setup for scenecache.

Defaults:
- INFO/DEBUG to stdout, WARNING and above to stderr
- Level INFO (overridable via env)
- Optional JSON format and optional file handler via env, no static paths

Env options (optional):
- SCENECACHE_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR (default INFO)
- SCENECACHE_LOG_JSON=1 (JSON formatting)
- SCENECACHE_LOG_FILE=/path/to/file.log (RotatingFileHandler)
- SCENECACHE_LOG_DIR=/path/to/dir (uses <service>.log when SCENECACHE_LOG_FILE unset)
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional


_INITIALIZED = False
_DEFAULT_SERVICE = ""

_TRUTHY = ('1', 'true', 'yes', 'on')

__all__ = [
    "setup_logging",
    "get_logger",
]


class _ServiceFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, 'service', None):
            record.service = _DEFAULT_SERVICE
        return True


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
            'level': record.levelname,
            'name': record.name,
            'service': getattr(record, 'service', ''),
            'message': record.getMessage(),
        }
        if record.exc_info:
            payload['exc'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _MinLevelFilter(logging.Filter):
    def __init__(self, min_level: int):
        super().__init__()
        self.min_level = min_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.min_level


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.max_level


def _get_level(override: Optional[str] = None) -> int:
    level = (override or os.getenv('SCENECACHE_LOG_LEVEL', 'INFO')).upper()
    return getattr(logging, level, logging.INFO)


def setup_logging(
    service: str = 'scenecache',
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
) -> None:
    """Configure unified logging once. Safe to call multiple times.

    Args:
        service: service label attached to every record (e.g., 'scenecache-cli')
        level: optional level override (DEBUG/INFO/...) else from env
        json_format: optional flag to force JSON format, else from env
    """
    global _DEFAULT_SERVICE
    global _INITIALIZED

    if _INITIALIZED:
        return

    root = logging.getLogger()
    root.setLevel(_get_level(level))

    use_json = (str(json_format).lower() in _TRUTHY) if json_format is not None \
        else (os.getenv('SCENECACHE_LOG_JSON', '').lower() in _TRUTHY)
    if use_json:
        formatter: logging.Formatter = _JSONFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s [%(service)s] %(message)s')

    service_filter = _ServiceFilter()

    # Split streams: INFO/DEBUG -> stdout, WARNING/ERROR -> stderr
    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(service_filter)
    stdout_handler.addFilter(_MaxLevelFilter(logging.INFO))
    root.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.addFilter(service_filter)
    stderr_handler.addFilter(_MinLevelFilter(logging.WARNING))
    root.addHandler(stderr_handler)

    log_path = os.getenv('SCENECACHE_LOG_FILE')
    if not log_path:
        log_dir = os.getenv('SCENECACHE_LOG_DIR')
        if log_dir:
            log_path = str(Path(log_dir) / f'{service}.log')

    if log_path:
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            fh = logging.handlers.RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=5, encoding='utf-8')
            fh.setFormatter(formatter)
            fh.addFilter(service_filter)
            root.addHandler(fh)
        except OSError:
            root.warning(f"Could not open log file {log_path}, using console only")

    _DEFAULT_SERVICE = service
    _INITIALIZED = True


def get_logger(name: Optional[str] = None, **context) -> logging.LoggerAdapter:
    base = logging.getLogger(name or __name__)
    # Ensure 'service' in context so formatter always sees it; rely on filter as fallback
    if 'service' not in context:
        context['service'] = _DEFAULT_SERVICE
    return logging.LoggerAdapter(base, context)
