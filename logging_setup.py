"""Process-wide logging configuration with credential redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Callable, Optional, TextIO

REDACTED = "***REDACTED***"

_SENSITIVE_KEY = r"[^'\"=&\s]*?(?:api[_-]?key|apikey|app[_-]?key|secret|signature|token|password|passphrase)[^'\"=&\s]*"

_QUOTED_PAIR = re.compile(
    rf"(?P<q>['\"])(?P<key>{_SENSITIVE_KEY})(?P=q)(?P<sep>\s*:\s*)(?P<vq>['\"])(?P<value>.*?)(?P=vq)",
    re.IGNORECASE,
)
_QUERY_PAIR = re.compile(rf"(?P<key>{_SENSITIVE_KEY})=(?P<value>[^&\s'\"]+)", re.IGNORECASE)

_DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_installed_factory: Optional[Callable[..., logging.LogRecord]] = None


def redact(message: str) -> str:
    """Mask credential values in ``message``."""

    message = _QUOTED_PAIR.sub(
        lambda match: f"{match['q']}{match['key']}{match['q']}{match['sep']}{match['vq']}{REDACTED}{match['vq']}",
        message,
    )
    return _QUERY_PAIR.sub(lambda match: f"{match['key']}={REDACTED}", message)


def _install_redacting_record_factory() -> None:
    """Redact at record creation so handlers attached later are covered too."""

    global _installed_factory
    current = logging.getLogRecordFactory()
    if current is _installed_factory:
        return
    base_factory = current

    def factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
        record = base_factory(*args, **kwargs)
        try:
            message = record.getMessage()
        except Exception:
            return record
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return record

    logging.setLogRecordFactory(factory)
    _installed_factory = factory


def configure_logging(debug: int = 1, *, stream_target: Optional[TextIO] = None) -> None:
    """Configure the root logger.

    ``debug`` follows the 0/1/2 convention: warnings, info, debug.
    """

    if debug <= 0:
        level = logging.WARNING
    elif debug == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    _install_redacting_record_factory()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(stream_target or sys.stderr)
    handler.setFormatter(logging.Formatter(_DEFAULT_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("ccxt", "urllib3", "httpx", "asyncio"):
        logging.getLogger(noisy).setLevel(max(level, logging.INFO))


__all__ = ["REDACTED", "configure_logging", "redact"]
