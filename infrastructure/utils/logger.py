"""Lightweight JSON logger utility for the policy compiler and its scripts.

Provides a consistent logger adapter that emits structured logs with the
stack variant and correlation_id fields when available.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        variant = getattr(record, "variant", None) or os.environ.get("DATAEDU_VARIANT")
        if variant:
            payload["variant"] = variant
        corr = getattr(record, "correlation_id", None)
        if corr:
            payload["correlation_id"] = corr
        for key in ("principal", "resource", "action", "decision", "binding", "job"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = str(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if not hasattr(record, "asctime"):
            payload["timestamp"] = record.created
        return json.dumps(payload, ensure_ascii=False)


class _Adapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: Dict[str, Any]):  # type: ignore[override]
        extra = self.extra.copy() if isinstance(self.extra, dict) else {}
        if "extra" in kwargs and isinstance(kwargs["extra"], dict):
            extra.update(kwargs["extra"])  # merge per-call extras
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(
    name: str, correlation_id: Optional[str] = None, variant: Optional[str] = None
) -> logging.LoggerAdapter:
    """Return a JSON-formatted logger adapter with optional variant and correlation_id."""
    base = logging.getLogger(name)
    if not base.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
        base.addHandler(handler)
    level = str(os.environ.get("LOG_LEVEL", "INFO")).upper()
    base.setLevel(getattr(logging, level, logging.INFO))
    extras: Dict[str, Any] = {"variant": variant or os.environ.get("DATAEDU_VARIANT")}
    if correlation_id:
        extras["correlation_id"] = correlation_id
    return _Adapter(base, extras)
