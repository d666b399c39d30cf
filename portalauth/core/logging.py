"""
Secure Logging
==============

Logging setup for the auth client. Every handler carries a filter that
scrubs credentials before a record is written:

- ``field=value`` / ``"field": "value"`` pairs whose name mentions a
  password, token, CSRF value, secret or authorization header
- ``Bearer <token>`` strings
- long hex or base64 runs (digests, session tokens, sealed records)
- values of sensitive keys in dict arguments, e.g. a logged request body
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Mapping, Optional, Pattern

if TYPE_CHECKING:
    from portalauth.core.config import PortalConfig

ROOT_LOGGER_NAME: Final[str] = "portalauth"
REDACTED: Final[str] = "[REDACTED]"

_SENSITIVE_WORDS: Final[tuple[str, ...]] = (
    "password", "passwd", "token", "csrf", "secret", "authorization", "encryption_key",
)

_FIELD_RE: Final[Pattern[str]] = re.compile(
    r'(?i)([\w-]*(?:' + "|".join(_SENSITIVE_WORDS) + r')[\w-]*["\']?\s*[=:]\s*["\']?)[^\s"\',}]+'
)
_BEARER_RE: Final[Pattern[str]] = re.compile(r'(?i)\b(bearer\s+)[A-Za-z0-9._~+/=-]+')
_OPAQUE_RE: Final[Pattern[str]] = re.compile(r'\b[A-Fa-f0-9]{32,}\b|[A-Za-z0-9+/_-]{40,}={0,2}')

_CONSOLE_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_FILE_FORMAT: Final[str] = "%(asctime)s %(levelname)-8s %(name)s [%(module)s:%(lineno)d] %(message)s"


def _is_sensitive_name(name: Any) -> bool:
    lowered = str(name).lower()
    return any(word in lowered for word in _SENSITIVE_WORDS)


def redact(text: str) -> str:
    """Scrub credentials out of free text."""
    text = _FIELD_RE.sub(lambda m: m.group(1) + REDACTED, text)
    text = _BEARER_RE.sub(lambda m: m.group(1) + REDACTED, text)
    return _OPAQUE_RE.sub(REDACTED, text)


def _redact_arg(value: Any) -> Any:
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, Mapping):
        return {
            k: REDACTED if _is_sensitive_name(k) else _redact_arg(v)
            for k, v in value.items()
        }
    return value


class SecureLogFilter(logging.Filter):
    """
    Scrubs the message and its arguments in place. Never drops a record.

    ``extra_patterns`` are replaced wholesale with ``[REDACTED]``.
    """

    def __init__(self, name: str = "", extra_patterns: Optional[list[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._extra_patterns = list(extra_patterns or ())

    def _scrub(self, text: str) -> str:
        text = redact(text)
        for pattern in self._extra_patterns:
            text = pattern.sub(REDACTED, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._scrub(record.msg)

        # A single dict argument arrives unwrapped
        if isinstance(record.args, Mapping):
            record.args = _redact_arg(record.args)
        elif record.args:
            record.args = tuple(
                self._scrub(arg) if isinstance(arg, str) else _redact_arg(arg)
                for arg in record.args
            )
        return True


class StructuredLogFormatter(logging.Formatter):
    """One compact JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, separators=(",", ":"))


def _console_handler(log_filter: logging.Filter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    handler.addFilter(log_filter)
    return handler


def _file_handler(
    log_dir: Path,
    name: str,
    log_filter: logging.Filter,
    *,
    json_output: bool,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    """Rotating file ``<log_dir>/<name>.log``; the directory is created."""
    if ".." in log_dir.parts:
        raise ValueError("Log directory cannot contain '..'")
    log_dir = log_dir.resolve()
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_dir / f"{name.replace('.', '_')}.log",
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    if json_output:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    handler.addFilter(log_filter)
    return handler


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Return logger ``name`` with redacting handlers attached.

    Handlers are attached once; later calls return the logger unchanged.
    File output needs both ``enable_file`` and ``log_dir``.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level.upper())
    log_filter = SecureLogFilter()

    if enable_console:
        logger.addHandler(_console_handler(log_filter))
    if enable_file and log_dir is not None:
        logger.addHandler(_file_handler(
            log_dir,
            name,
            log_filter,
            json_output=enable_json,
            max_bytes=max_file_size,
            backup_count=backup_count,
        ))

    logger.propagate = False
    return logger


def configure_logging(config: PortalConfig) -> logging.Logger:
    """
    Configure the ``portalauth`` logger from configuration.

    Call once at startup. Module loggers (``portalauth.session``,
    ``portalauth.storage`` and so on) propagate to it.
    """
    settings = config.logging
    return get_secure_logger(
        ROOT_LOGGER_NAME,
        log_dir=config.paths.log_dir,
        level=settings.level,
        enable_console=settings.enable_console,
        enable_file=settings.enable_file,
        enable_json=settings.enable_json,
        max_file_size=settings.max_file_size_bytes,
        backup_count=settings.backup_count,
    )
