from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
import jwt

from .config import settings


@dataclass(frozen=True)
class AuthContext:
    account_id: str
    username: str
    is_admin: bool


def decode_token(token: str) -> AuthContext:
    """Verify a portal-issued access token. Issuing tokens is the account service's job."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    account_id = payload.get("sub")
    username = payload.get("username")
    is_admin = bool(payload.get("is_admin", False))
    if not account_id or not username:
        raise HTTPException(status_code=401, detail="Malformed token payload")

    return AuthContext(account_id=str(account_id), username=username, is_admin=is_admin)


def get_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    return parts[1].strip()


def auth_context_from_header(authorization: Optional[str] = Header(default=None)) -> AuthContext:
    token = get_bearer_token(authorization)
    return decode_token(token)


def require_admin(auth: AuthContext = Depends(auth_context_from_header)) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth
