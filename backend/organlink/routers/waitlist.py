from __future__ import annotations

from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from ..engine.allocation import AllocationEngine
from ..models.common import OrganType
from ..models.user import Caller
from ..models.waitlist import WaitingListAdd, WaitingListEntry, WaitingListPriorityUpdate
from ..utils.security import READ, WAITLIST
from .access import require_capability

router = APIRouter(prefix="/waitlist", tags=["waitlist"])
Reader = Annotated[Caller, Depends(require_capability(READ))]
Editor = Annotated[Caller, Depends(require_capability(WAITLIST))]


def get_engine() -> AllocationEngine:
    return router.services.engine


Engine = Annotated[AllocationEngine, Depends(get_engine)]


@router.post("", response_model=WaitingListEntry, status_code=status.HTTP_201_CREATED)
async def add_entry(_: Editor, payload: WaitingListAdd, engine: Engine) -> WaitingListEntry:
    return await engine.add_to_waiting_list(
        payload.recipient,
        payload.organ_type,
        payload.urgency_level,
        payload.region,
        payload.priority,
    )


@router.get("/{organ_type}/{region}", response_model=List[WaitingListEntry])
async def raw_queue(
    _: Reader, organ_type: OrganType, region: str, engine: Engine, include_inactive: bool = False
) -> List[WaitingListEntry]:
    return engine.get_waiting_list(organ_type, region, include_inactive=include_inactive)


@router.get("/{organ_type}/{region}/prioritized", response_model=List[WaitingListEntry])
async def prioritized_queue(_: Reader, organ_type: OrganType, region: str, engine: Engine) -> List[WaitingListEntry]:
    return engine.prioritized_waiting_list(organ_type, region)


@router.put("/priority", response_model=WaitingListEntry)
async def update_priority(_: Editor, payload: WaitingListPriorityUpdate, engine: Engine) -> WaitingListEntry:
    return await engine.update_waiting_list_priority(
        payload.recipient,
        payload.organ_type,
        payload.urgency_level,
        payload.priority,
        payload.region,
    )


@router.delete("/{organ_type}/{recipient}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw(_: Editor, organ_type: OrganType, recipient: str, engine: Engine) -> None:
    await engine.withdraw_from_waiting_list(recipient, organ_type)


def init_router(services) -> None:
    router.services = services
