from __future__ import annotations

import logging

from starlette.requests import HTTPConnection

logger = logging.getLogger("novaguard.identity")

UNKNOWN_CLIENT = "unknown"


def _first_forwarded(value: str | None) -> str | None:
    if not value:
        return None
    first = value.split(",")[0].strip()
    return first or None


def resolve_client_ip(connection: HTTPConnection, trust_proxy_headers: bool = True) -> str:
    """Best-effort caller address; proxy headers win over the socket peer."""
    try:
        if trust_proxy_headers:
            forwarded = _first_forwarded(connection.headers.get("x-forwarded-for"))
            if forwarded:
                return forwarded
            real_ip = (connection.headers.get("x-real-ip") or "").strip()
            if real_ip:
                return real_ip
        if connection.client and connection.client.host:
            return connection.client.host
    except (TypeError, ValueError, KeyError):
        logger.debug("Malformed client metadata", extra={"event": "identity_fallback"}, exc_info=True)
    return UNKNOWN_CLIENT
