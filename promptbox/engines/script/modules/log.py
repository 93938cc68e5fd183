"""
Log module for sandboxed expressions and helpers: info, warn, error, debug.

Messages go to a dedicated logger so sandboxed code never touches the host
logging configuration; arguments are stringified and truncated.
"""

import logging
from types import SimpleNamespace
from typing import Any

logger = logging.getLogger("promptbox.sandbox")

MAX_MESSAGE_LENGTH = 2000


def make_log_module(
    *,
    logger_instance: logging.Logger | None = None,
    extra: dict[str, Any] | None = None,
) -> Any:
    """Sandbox `log` with one function per level; *extra* is attached to every record."""
    log = logger_instance or logger
    ext = dict(extra or {})

    def _log(level: int, *parts: Any) -> None:
        msg = " ".join(str(p) for p in parts)
        if len(msg) > MAX_MESSAGE_LENGTH:
            msg = msg[:MAX_MESSAGE_LENGTH] + "..."
        log.log(level, "[sandbox] %s", msg, extra=ext or None)

    def info(*parts: Any) -> None:
        _log(logging.INFO, *parts)

    def warn(*parts: Any) -> None:
        _log(logging.WARNING, *parts)

    def error(*parts: Any) -> None:
        _log(logging.ERROR, *parts)

    def debug(*parts: Any) -> None:
        _log(logging.DEBUG, *parts)

    return SimpleNamespace(info=info, warn=warn, error=error, debug=debug)
