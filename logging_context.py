# logging_context.py
"""
Per-request diagnostic context (MDC) for log records.

The context lives in a ContextVar so every request task sees only its own
entries. Values are never mutated in place: mdc_put swaps in a new dict, so a
context copied into a worker thread cannot write back into the request task.
"""
import logging
from contextvars import ContextVar
from typing import Dict, Optional

_MDC: ContextVar[Optional[Dict[str, Optional[str]]]] = ContextVar("bluebutton_mdc", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [dn=%(client_dn)s] %(message)s %(mdc)s"


def mdc_put(key: str, value: Optional[str]) -> None:
    current = _MDC.get() or {}
    updated = dict(current)
    updated[key] = value
    _MDC.set(updated)


def mdc_get(key: str) -> Optional[str]:
    return (_MDC.get() or {}).get(key)


def mdc_copy() -> Dict[str, Optional[str]]:
    return dict(_MDC.get() or {})


def mdc_clear() -> None:
    _MDC.set({})


class MdcFilter(logging.Filter):
    """Copies the current diagnostic context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        mdc = mdc_copy()
        record.mdc = mdc
        record.client_dn = mdc.get("req.clientSSL.DN")
        return True


def configure_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> None:
    logging.basicConfig(level=level.upper(), format=fmt)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, MdcFilter) for f in handler.filters):
            handler.addFilter(MdcFilter())
