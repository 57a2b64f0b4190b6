from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from ..middleware import get_defense
from ..schemas import ActionResponse, BlockedIPItem, BlockedIPsResponse, BlockIPRequest
from ..security import AuthContext, require_admin

router = APIRouter(prefix="/api/admin/security", tags=["admin"])
logger = logging.getLogger("novaguard.admin")


@router.get("/blocked-ips", response_model=BlockedIPsResponse)
def list_blocked_ips(request: Request, _admin: AuthContext = Depends(require_admin)) -> BlockedIPsResponse:
    defense = get_defense(request)
    return BlockedIPsResponse(
        data=[BlockedIPItem(**item) for item in defense.get_blocked_ips()],
        config=defense.security_config(),
    )


@router.post("/block-ip", response_model=ActionResponse)
def block_ip(
    payload: BlockIPRequest,
    request: Request,
    admin: AuthContext = Depends(require_admin),
) -> ActionResponse:
    get_defense(request).manual_block_ip(payload.ip, payload.reason, payload.duration_minutes)
    logger.info(
        "Manual IP block",
        extra={"event": "admin_block", "ip": payload.ip, "username": admin.username, "reason": payload.reason},
    )
    return ActionResponse(message=f"IP {payload.ip} blocked")


@router.delete("/blocked-ips/{ip}", response_model=ActionResponse)
def unblock_ip(ip: str, request: Request, admin: AuthContext = Depends(require_admin)) -> ActionResponse:
    removed = get_defense(request).unblock_ip(ip)
    logger.info("Manual IP unblock", extra={"event": "admin_unblock", "ip": ip, "username": admin.username})
    if not removed:
        return ActionResponse(message=f"IP {ip} was not blocked")
    return ActionResponse(message=f"IP {ip} unblocked")
