from __future__ import annotations

from datetime import datetime, timezone
import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import Response

from .accounts import AccountDirectory, UnconfiguredAccountDirectory
from .config import Settings, settings as default_settings
from .cors import PolicyCORSMiddleware, create_cors_config
from .defense import DefenseContext
from .errors import DefenseRejection
from .logging_utils import configure_logging
from .metrics import CONTENT_TYPE_LATEST, REQUESTS_TOTAL, generate_latest
from .middleware import (
    RateLimitMiddleware,
    SanitizeInputMiddleware,
    SecurityLoggerMiddleware,
    sanitize_path_params,
    security_headers,
)
from .rate_limit import Clock
from .routers.admin import router as admin_router
from .routers.auth import router as auth_router
from .sweeper import Sweeper

configure_logging()
logger = logging.getLogger("novaguard.app")


def create_app(
    app_settings: Optional[Settings] = None,
    accounts: Optional[AccountDirectory] = None,
    clock: Clock = time.time,
) -> FastAPI:
    cfg = app_settings or default_settings
    defense = DefenseContext(cfg.defense, clock=clock)
    sweeper = Sweeper(defense, cfg.defense.sweep_interval_seconds)

    app = FastAPI(
        title="NovaEra Portal API",
        version="1.0.0",
        dependencies=[Depends(sanitize_path_params)],
    )
    app.state.settings = cfg
    app.state.defense = defense
    app.state.sweeper = sweeper
    app.state.accounts = accounts or UnconfiguredAccountDirectory()
    app.state.trust_proxy_headers = cfg.trust_proxy_headers

    @app.on_event("startup")
    async def startup_event() -> None:
        sweeper.start()
        logger.info("Defense pipeline started", extra={"event": "startup"})

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await sweeper.stop()

    @app.exception_handler(DefenseRejection)
    async def defense_rejection_handler(_request: Request, exc: DefenseRejection) -> Response:
        return exc.to_response()

    # Added innermost first: sanitize -> threat scan -> CORS -> rate limits -> headers.
    # Preflights end at CORS, so the block list and limiters wrap it.
    app.add_middleware(SanitizeInputMiddleware)
    app.add_middleware(SecurityLoggerMiddleware, defense=defense, trust_proxy_headers=cfg.trust_proxy_headers)
    app.add_middleware(PolicyCORSMiddleware, policy=create_cors_config(cfg.cors_origins))
    app.add_middleware(RateLimitMiddleware, defense=defense, trust_proxy_headers=cfg.trust_proxy_headers)

    @app.middleware("http")
    async def request_metrics_middleware(request: Request, call_next):
        response = await call_next(request)
        REQUESTS_TOTAL.labels(method=request.method, status=str(response.status_code)).inc()
        return response

    app.middleware("http")(security_headers)

    @app.get("/api/health")
    async def healthcheck() -> dict[str, str]:
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/metrics")
    async def metrics() -> Response:
        if not cfg.enable_prometheus_metrics:
            raise HTTPException(status_code=404, detail="Metrics disabled")
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    app.include_router(admin_router)
    return app


app = create_app()
