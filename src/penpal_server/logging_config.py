"""Process-wide logging setup driven by ``config.logging``.

Modules never configure handlers themselves; they only create a module
logger with ``logging.getLogger(__name__)``. The CLI and the API server call
:func:`configure_logging` once at startup.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


class JsonFormatter(logging.Formatter):
    """Render one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Log level name; defaults to ``config.logging.level``.
        fmt: ``simple``, ``detailed`` or ``json``; defaults to
            ``config.logging.format``.
    """
    from penpal_server.config import config

    level = (level or config.logging.level).upper()
    fmt = fmt or config.logging.format

    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FORMATS.get(fmt, _FORMATS["detailed"])))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))
