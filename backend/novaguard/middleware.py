from __future__ import annotations

import json
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, unquote_plus, urlencode

from fastapi import Request
from fastapi.responses import Response
from starlette.datastructures import Headers, MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .defense import DefenseContext
from .errors import DefenseRejection
from .identity import resolve_client_ip
from .sanitize import clean_string, is_excluded, sanitize_pairs, sanitize_value


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data: https:; font-src 'self' https://fonts.gstatic.com"
    ),
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}
IDENTIFYING_HEADERS = ("X-Powered-By", "Server")

# Bodies of other types (uploads, binary callbacks) are neither scanned nor rewritten.
SCANNED_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded", "text/")


async def security_headers(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    for header in IDENTIFYING_HEADERS:
        if header in response.headers:
            del response.headers[header]
    return response


def _client_ip(scope: Scope, trust_proxy_headers: bool) -> str:
    state = scope.setdefault("state", {})
    ip = state.get("client_ip")
    if ip is None:
        ip = resolve_client_ip(HTTPConnection(scope), trust_proxy_headers)
        state["client_ip"] = ip
    return ip


async def _read_body(receive: Receive) -> bytes:
    chunks: list[bytes] = []
    while True:
        message = await receive()
        if message["type"] != "http.request":
            break
        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break
    return b"".join(chunks)


def _replay(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _has_textual_body(scope: Scope) -> bool:
    content_type = Headers(scope=scope).get("content-type", "").lower()
    return content_type.startswith(SCANNED_CONTENT_TYPES)


def _is_json(scope: Scope) -> bool:
    return Headers(scope=scope).get("content-type", "").lower().startswith("application/json")


def _is_form(scope: Scope) -> bool:
    return "application/x-www-form-urlencoded" in Headers(scope=scope).get("content-type", "").lower()


class RateLimitMiddleware:
    """Block list, burst detection and the general rate limit, then the auth limit on auth paths."""

    def __init__(self, app: ASGIApp, defense: DefenseContext, trust_proxy_headers: bool = True) -> None:
        self.app = app
        self.defense = defense
        self.trust_proxy_headers = trust_proxy_headers

    def _counts_as_auth_attempt(self, scope: Scope) -> bool:
        # Preflights only feed the general limiter.
        return scope.get("method") != "OPTIONS" and self.defense.config.is_auth_path(scope["path"])

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        ip = _client_ip(scope, self.trust_proxy_headers)
        try:
            decision = self.defense.check_request(ip)
            if self._counts_as_auth_attempt(scope):
                self.defense.check_auth_request(ip)
        except DefenseRejection as exc:
            await exc.to_response()(scope, receive, send)
            return

        rate_headers = decision.headers()

        async def send_with_rate_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message).update(rate_headers)
            await send(message)

        await self.app(scope, receive, send_with_rate_headers)


class SecurityLoggerMiddleware:
    """Scans body, query string and path for threat signatures before routing."""

    def __init__(self, app: ASGIApp, defense: DefenseContext, trust_proxy_headers: bool = True) -> None:
        self.app = app
        self.defense = defense
        self.trust_proxy_headers = trust_proxy_headers

    def _payload_text(self, scope: Scope, body: bytes) -> str:
        parts = [unquote_plus(scope.get("query_string", b"").decode("latin-1"))]
        if body:
            text = body.decode("utf-8", errors="replace")
            if _is_json(scope):
                # Re-serialise so \u-escaped markers are seen in plain form.
                try:
                    text = json.dumps(json.loads(text), ensure_ascii=False)
                except ValueError:
                    pass
            elif _is_form(scope):
                text = unquote_plus(text)
            parts.append(text)
        return "\n".join(parts)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body = b""
        if _has_textual_body(scope):
            body = await _read_body(receive)
            receive = _replay(body, receive)

        ip = _client_ip(scope, self.trust_proxy_headers)
        try:
            self.defense.scan_request(ip, self._payload_text(scope, body), scope["path"], scope.get("method", ""))
        except DefenseRejection as exc:
            await exc.to_response()(scope, receive, send)
            return

        await self.app(scope, receive, send)


class SanitizeInputMiddleware:
    """Strips null bytes and surrounding whitespace from query values and JSON or form bodies."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    def _sanitize_query(self, scope: Scope) -> Scope:
        raw = scope.get("query_string", b"")
        if not raw:
            return scope
        pairs = parse_qsl(raw.decode("latin-1"), keep_blank_values=True)
        cleaned = sanitize_pairs(pairs)
        if cleaned == pairs:
            return scope
        return {**scope, "query_string": urlencode(cleaned).encode("latin-1")}

    def _sanitize_body(self, scope: Scope, body: bytes) -> bytes:
        """Return the cleaned body, or ``body`` itself when nothing changed."""
        if _is_json(scope):
            try:
                value = json.loads(body)
            except ValueError:
                # Left for request validation to reject.
                return body
            cleaned = sanitize_value(value)
            if cleaned == value:
                return body
            return json.dumps(cleaned).encode("utf-8")

        if _is_form(scope):
            pairs = parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True)
            cleaned_pairs = sanitize_pairs(pairs)
            if cleaned_pairs == pairs:
                return body
            return urlencode(cleaned_pairs).encode("utf-8")

        return body

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope = self._sanitize_query(scope)
        if _is_json(scope) or _is_form(scope):
            body = await _read_body(receive)
            if body:
                cleaned = self._sanitize_body(scope, body)
                if cleaned is not body:
                    body = cleaned
                    MutableHeaders(scope=scope)["content-length"] = str(len(body))
            receive = _replay(body, receive)

        await self.app(scope, receive, send)


def get_defense(request: Request) -> DefenseContext:
    return request.app.state.defense


def client_ip(request: Request) -> str:
    ip = getattr(request.state, "client_ip", None)
    if ip is None:
        trust = getattr(request.app.state, "trust_proxy_headers", True)
        ip = resolve_client_ip(request, trust)
        request.state.client_ip = ip
    return ip


def sanitize_path_params(request: Request) -> None:
    params = request.scope.get("path_params")
    if not params:
        return
    for key, value in list(params.items()):
        if isinstance(value, str) and not is_excluded(key):
            params[key] = clean_string(value)
