from __future__ import annotations

from typing import get_args

from fastapi import Depends, Header, HTTPException, Request, status

from ..database import settings
from ..models.user import Caller, CallerRole
from ..utils.security import OVERSEE

DEMO_CALLER = Caller(id="demo-coordinator", role="coordinator")


async def get_caller(
    x_caller_id: str | None = Header(default=None),
    x_caller_role: str | None = Header(default=None),
) -> Caller:
    if not x_caller_id and not x_caller_role:
        if settings.auto_authorize_demo:
            return DEMO_CALLER
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    if not x_caller_id or x_caller_role not in get_args(CallerRole):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid caller identity")
    return Caller(id=x_caller_id, role=x_caller_role)


def require_capability(capability: str):
    def dependency(request: Request, caller: Caller = Depends(get_caller)) -> Caller:
        policy = request.app.state.services.policy
        if not policy.allows(caller, capability):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this action",
            )
        return caller

    return dependency


async def ensure_hospital_member(request: Request, caller: Caller, hospital: str | None) -> None:
    """Callers without oversight must be the hospital or on its staff."""
    services = request.app.state.services
    if services.policy.allows(caller, OVERSEE):
        return
    if not await services.hospitals.is_member(hospital, caller.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Caller is not staff of the hospital handling this allocation",
        )
