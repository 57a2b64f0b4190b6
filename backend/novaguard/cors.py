from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Optional

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger("novaguard.cors")


@dataclass(frozen=True)
class CorsPolicy:
    allowed_origins: tuple[str, ...]
    allow_credentials: bool = True
    allow_methods: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
    allow_headers: tuple[str, ...] = ("Content-Type", "Authorization", "X-Requested-With")
    max_age: int = 86400
    _origin_set: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_origin_set", frozenset(self.allowed_origins))

    @property
    def allow_all(self) -> bool:
        return "*" in self._origin_set

    def is_allowed(self, origin: Optional[str]) -> bool:
        # Requests without an Origin header (curl, game launcher) are not cross-origin.
        if not origin:
            return True
        if self.allow_all or origin in self._origin_set:
            return True
        logger.info("CORS blocked origin", extra={"event": "cors_rejected", "origin": origin})
        return False

    def middleware_options(self) -> dict[str, Any]:
        """Keyword arguments for ``starlette.middleware.cors.CORSMiddleware``."""
        return {
            "allow_origins": list(self.allowed_origins),
            "allow_credentials": self.allow_credentials,
            "allow_methods": list(self.allow_methods),
            "allow_headers": list(self.allow_headers),
            "max_age": self.max_age,
        }


def create_cors_config(allowed_origins: Optional[list[str]] = None) -> CorsPolicy:
    origins = [origin.strip() for origin in (allowed_origins or ["*"]) if origin.strip()]
    return CorsPolicy(allowed_origins=tuple(origins or ["*"]))


class PolicyCORSMiddleware(CORSMiddleware):
    """Starlette's CORS handling with origin decisions taken from a ``CorsPolicy``."""

    def __init__(self, app: ASGIApp, policy: CorsPolicy) -> None:
        super().__init__(app, **policy.middleware_options())
        self.policy = policy

    def is_allowed_origin(self, origin: str) -> bool:
        return self.policy.is_allowed(origin)
