"""Verbose request/response tracing.

Trace output goes to the "kwclient.trace" logger at DEBUG level and is only
produced for sessions configured with trace=True. Tokens are never written
out: access_token and refresh_token values and the bearer header are
replaced before logging.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

trace_logger = logging.getLogger("kwclient.trace")

HIDDEN = "[HIDDEN]"
SECRET_FIELDS = frozenset({"access_token", "refresh_token", "client_secret", "code"})


def redact(payload: Any) -> Any:
    """Return a copy of payload with token values hidden."""
    if isinstance(payload, Mapping):
        return {
            k: HIDDEN if k in SECRET_FIELDS else redact(v) for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [redact(v) for v in payload]
    return payload


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with the Authorization value hidden."""
    return {
        k: HIDDEN if k.lower() == "authorization" else v for k, v in headers.items()
    }


def trace_request(
    username: str,
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
) -> None:
    """Log an outgoing request."""
    trace_logger.debug(f"[kiteworks]: {username}")
    trace_logger.debug(f'--> METHOD: "{method.upper()}" URL: "{url}"')
    if headers:
        for name, value in redact_headers(headers).items():
            trace_logger.debug(f"\\-> HEADER: {name}: {value}")
    if body is not None:
        trace_logger.debug(f"\\-> BODY: {_dump(body)}")


def trace_response(status: str, content: bytes) -> None:
    """Log a response status and its (redacted) body."""
    trace_logger.debug(f"<-- RESPONSE STATUS: {status}")
    if not content:
        return
    try:
        payload = json.loads(content)
    except ValueError:
        trace_logger.debug(content[:4096].decode("utf-8", errors="replace"))
        return
    trace_logger.debug(_dump(payload))


def _dump(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        return f"<{len(payload)} bytes>"
    if isinstance(payload, str):
        return payload
    return json.dumps(redact(payload), indent=2, default=str)
