# src/finfeed/logging_utils.py
"""Logging setup shared by the CLI, the HTTP surface and tests.

Every module logs event-style messages (``feed_ok source=Reuters
articles=10``).  The JSON formatter splits such a message into an ``event``
name plus one field per ``key=value`` pair, so downstream log tooling can
filter on ``source`` or ``failure`` without parsing text.
"""

import json
import logging
import logging.handlers
import re
import sys
import time
from typing import Any, Dict, Iterable, Optional

from .config import Settings, get_settings

# LogRecord attributes that are never echoed as extra fields
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}

_EVENT_RE = re.compile(r"^([a-z][a-z0-9_]*)(?:\s|$)")
_KV_RE = re.compile(r"(\w+)=(\S+)")

ROTATE_BYTES = 10 * 1024 * 1024
ROTATE_BACKUPS = 7


def _jsonify(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


def _extras(record: logging.LogRecord) -> Iterable:
    for key, value in record.__dict__.items():
        if key not in _RECORD_ATTRS and not key.startswith("_"):
            yield key, _jsonify(value)


def _timestamp(record: logging.LogRecord) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created))


def parse_event(message: str) -> Dict[str, str]:
    """Split ``"feed_ok source=X articles=3"`` into event name and fields.

    >>> parse_event("feed_ok source=X articles=3")
    {'event': 'feed_ok', 'source': 'X', 'articles': '3'}
    """
    out: Dict[str, str] = {}
    m = _EVENT_RE.match(message)
    if m:
        out["event"] = m.group(1)
    for key, value in _KV_RE.findall(message):
        out.setdefault(key, value)
    return out


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, name, msg, event fields, extras."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        base: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        for key, value in parse_event(msg).items():
            base.setdefault(key, value)
        for key, value in _extras(record):
            base.setdefault(key, value)
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """Single-line console format with the level colourised."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.LEVEL_COLOURS.get(record.levelname, "")
        level = f"{colour}{record.levelname:<8}{self.RESET if colour else ''}"
        extras = " ".join(f"{k}={v}" for k, v in _extras(record))
        line = f"{_timestamp(record)} {level} {record.name}: {record.getMessage()}"
        if extras:
            line += " " + extras
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _rotating(path, level: int = logging.NOTSET) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=ROTATE_BYTES, backupCount=ROTATE_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(level: Optional[str] = None, settings: Optional[Settings] = None) -> None:
    """Configure the root logger.

    The console gets JSON lines, or the colourised plain format when
    ``LOG_PLAIN=1``.  With ``LOG_DIR`` set, JSON logs also go to rotating
    ``finfeed.jsonl`` (all levels) and ``errors.log`` (WARNING and above).
    An explicit ``level`` wins over ``LOG_LEVEL``.
    """
    settings = settings or get_settings()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel((level or settings.log_level or "INFO").upper())

    if settings.log_dir is not None:
        try:
            settings.log_dir.mkdir(parents=True, exist_ok=True)
            root.addHandler(_rotating(settings.log_dir / "finfeed.jsonl"))
            root.addHandler(_rotating(settings.log_dir / "errors.log", logging.WARNING))
        except OSError as e:
            # console logging still works
            sys.stderr.write(f"log_dir_unavailable dir={settings.log_dir} err={e}\n")

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(PlainFormatter() if settings.log_plain else JsonFormatter())
    root.addHandler(console)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
