from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from ..accounts import AccountDirectory, AccountDirectoryError, UsernameTaken
from ..middleware import client_ip, get_defense
from ..schemas import AccountResponse, LoginRequest, RegisterRequest

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("novaguard.auth")


def get_account_directory(request: Request) -> AccountDirectory:
    return request.app.state.accounts


def _directory_unavailable(exc: AccountDirectoryError, path: str) -> HTTPException:
    logger.error(
        "Account directory unavailable",
        extra={"event": "account_directory_error", "reason": str(exc), "path": path},
    )
    return HTTPException(status_code=503, detail="Account service is unavailable")


@router.post("/login", response_model=AccountResponse)
def login(
    payload: LoginRequest,
    request: Request,
    directory: AccountDirectory = Depends(get_account_directory),
):
    defense = get_defense(request)
    ip = client_ip(request)
    defense.ensure_login_allowed(payload.username, ip)

    try:
        account = directory.verify_credentials(payload.username, payload.password)
    except AccountDirectoryError as exc:
        raise _directory_unavailable(exc, "/api/auth/login") from exc

    if account is None:
        status = defense.record_failed_login(payload.username, ip)
        if status.locked:
            wait = math.ceil(status.locked_until - defense.clock()) if status.locked_until else 0
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": "Too many failed attempts. Account temporarily locked.",
                    "remainingAttempts": 0,
                    "waitSeconds": wait,
                },
                headers={"Retry-After": str(wait)},
            )
        return JSONResponse(
            status_code=401,
            content={
                "success": False,
                "error": "Invalid username or password",
                "remainingAttempts": status.remaining_attempts,
            },
        )

    defense.clear_login_attempts(payload.username, ip)
    return AccountResponse(data=account)


@router.post("/register", response_model=AccountResponse, status_code=201)
def register(
    payload: RegisterRequest,
    directory: AccountDirectory = Depends(get_account_directory),
):
    try:
        account = directory.register(payload.username, payload.password, payload.email)
    except UsernameTaken as exc:
        raise HTTPException(status_code=409, detail="Username already exists") from exc
    except AccountDirectoryError as exc:
        raise _directory_unavailable(exc, "/api/auth/register") from exc
    return AccountResponse(data=account)
