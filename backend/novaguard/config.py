from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _as_list(value: str | None, default: str) -> list[str]:
    return [item.strip() for item in (value or default).split(",") if item.strip()]


DEFAULT_AUTH_PATHS = ("/api/auth/login", "/api/auth/register")


@dataclass(frozen=True)
class DefenseConfig:
    """Thresholds shared by every defense store. Fixed for the process lifetime."""

    rate_window_seconds: int = 60
    rate_max_requests: int = 200
    rate_block_multiplier: float = 1.5
    auth_window_seconds: int = 300
    auth_max_requests: int = 20
    burst_window_seconds: float = 5.0
    burst_max_requests: int = 30
    login_max_attempts: int = 10
    login_lockout_seconds: int = 300
    block_seconds: int = 900
    sweep_interval_seconds: float = 60.0
    auth_paths: tuple[str, ...] = DEFAULT_AUTH_PATHS

    @property
    def rate_block_threshold(self) -> float:
        return self.rate_max_requests * self.rate_block_multiplier

    def is_auth_path(self, path: str) -> bool:
        return path.rstrip("/") in self.auth_paths


@dataclass(frozen=True)
class Settings:
    env: str
    secret_key: str
    jwt_algorithm: str
    cors_origins: list[str]
    trust_proxy_headers: bool
    enable_prometheus_metrics: bool
    log_level: str
    defense: DefenseConfig

    @property
    def is_production(self) -> bool:
        return self.env.lower() not in {"development", "dev", "test", "testing"}

    def validate(self) -> None:
        """Raise early on dangerous mis-configurations in non-dev environments."""
        if self.is_production and self.secret_key == _DEFAULT_SECRET_KEY:
            raise RuntimeError(
                "SECRET_KEY must be explicitly set in production. "
                "It must match the key used by the portal's token issuer."
            )
        if self.is_production and "*" in self.cors_origins:
            raise RuntimeError("CORS_ORIGINS must list explicit origins in production")


_DEFAULT_SECRET_KEY = "change-me-in-production-min-32-bytes-key"


def load_settings() -> Settings:
    defense = DefenseConfig(
        rate_window_seconds=max(1, _as_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)),
        rate_max_requests=max(1, _as_int(os.getenv("RATE_LIMIT_MAX_REQUESTS"), 200)),
        rate_block_multiplier=max(1.0, _as_float(os.getenv("RATE_LIMIT_BLOCK_MULTIPLIER"), 1.5)),
        auth_window_seconds=max(1, _as_int(os.getenv("AUTH_RATE_LIMIT_WINDOW_SECONDS"), 5 * 60)),
        auth_max_requests=max(1, _as_int(os.getenv("AUTH_RATE_LIMIT_MAX_REQUESTS"), 20)),
        burst_window_seconds=max(0.5, _as_float(os.getenv("BURST_WINDOW_SECONDS"), 5.0)),
        burst_max_requests=max(1, _as_int(os.getenv("BURST_MAX_REQUESTS"), 30)),
        login_max_attempts=max(1, _as_int(os.getenv("LOGIN_MAX_ATTEMPTS"), 10)),
        login_lockout_seconds=max(1, _as_int(os.getenv("LOGIN_LOCKOUT_SECONDS"), 5 * 60)),
        block_seconds=max(1, _as_int(os.getenv("BLOCK_SECONDS"), 15 * 60)),
        sweep_interval_seconds=max(1.0, _as_float(os.getenv("SWEEP_INTERVAL_SECONDS"), 60.0)),
        auth_paths=tuple(_as_list(os.getenv("AUTH_RATE_LIMIT_PATHS"), ",".join(DEFAULT_AUTH_PATHS))),
    )
    return Settings(
        env=os.getenv("ENV", "development"),
        secret_key=os.getenv("SECRET_KEY", _DEFAULT_SECRET_KEY),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        cors_origins=_as_list(os.getenv("CORS_ORIGINS"), "*"),
        trust_proxy_headers=_as_bool(os.getenv("TRUST_PROXY_HEADERS"), True),
        enable_prometheus_metrics=_as_bool(os.getenv("ENABLE_PROMETHEUS_METRICS"), True),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        defense=defense,
    )


settings = load_settings()

settings.validate()
