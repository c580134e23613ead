from __future__ import annotations

import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

import structlog

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_TRUTHY = {"1", "true", "yes", "on"}
# substrings of log keys whose string values are masked
_SENSITIVE_KEYS = ("password", "secret", "token", "api_key", "authorization", "email", "dsn")


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind ``correlation_id`` (or a fresh uuid) to the current context and return it.

    Every log line emitted by a repo call in this context carries the id.
    """
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def _add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    cid = correlation_id_var.get()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _redact_pii(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Mask connection strings and credentials, keeping two chars at each end."""
    for key, value in list(event_dict.items()):
        if not isinstance(value, str) or len(value) <= 4:
            continue
        lowered = key.lower()
        if any(marker in lowered for marker in _SENSITIVE_KEYS):
            event_dict[key] = f"{value[:2]}***{value[-2:]}"
    return event_dict


def configure_logging(
    level: str = "INFO", *, json_output: bool = True, dev_mode: bool = False
) -> None:
    """Install the structlog pipeline used by the store and every repo.

    JSON lines by default; ``dev_mode`` or ``json_output=False`` switch to the
    colored console renderer.
    """
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_correlation_id,
        _redact_pii,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if dev_mode or not json_output:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(
    os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_JSON", "true").lower() in _TRUTHY,
    dev_mode=os.getenv("LOG_DEV_MODE", "false").lower() in _TRUTHY,
)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


_MAX_LOGGED_STRING = 64
_MAX_LOGGED_ITEMS = 10


def redact_params(params: Any, *, depth: int = 0) -> Any:
    """Reduce statement parameters to something safe to put in a log line.

    Identifiers, numbers, booleans and instants pass through. Strings are
    truncated, JSON payloads are replaced by their key list and long
    sequences are cut to their first few items plus a count.
    """
    if depth > 3:
        return "..."
    if params is None or isinstance(params, (bool, int, float, uuid.UUID, datetime)):
        return params
    if isinstance(params, str):
        if len(params) > _MAX_LOGGED_STRING:
            return params[:_MAX_LOGGED_STRING] + f"...({len(params)} chars)"
        return params
    obj = getattr(params, "obj", None)
    if obj is not None and type(params).__name__ in {"Json", "Jsonb"}:
        params = obj
    if isinstance(params, Mapping):
        return {"keys": sorted(str(k) for k in params.keys())}
    if isinstance(params, Sequence) and not isinstance(params, (bytes, bytearray)):
        items = [redact_params(p, depth=depth + 1) for p in list(params)[:_MAX_LOGGED_ITEMS]]
        if len(params) > _MAX_LOGGED_ITEMS:
            items.append(f"+{len(params) - _MAX_LOGGED_ITEMS} more")
        return items
    if isinstance(params, (bytes, bytearray)):
        return f"<{len(params)} bytes>"
    return type(params).__name__
