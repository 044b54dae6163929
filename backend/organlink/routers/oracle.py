from __future__ import annotations

from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..engine.allocation import AllocationEngine
from ..models.oracle import DeathVerificationRequest, VerificationFulfillment, VerificationStatus
from ..models.user import Caller
from ..oracle.gateway import InMemoryOracleGateway
from ..utils.security import ATTEST, READ, REGISTER
from .access import require_capability

router = APIRouter(prefix="/oracle", tags=["oracle"])
Reader = Annotated[Caller, Depends(require_capability(READ))]
Registrar = Annotated[Caller, Depends(require_capability(REGISTER))]
Attester = Annotated[Caller, Depends(require_capability(ATTEST))]


def get_engine() -> AllocationEngine:
    return router.services.engine


def get_gateway() -> InMemoryOracleGateway:
    return router.services.gateway


Engine = Annotated[AllocationEngine, Depends(get_engine)]
Gateway = Annotated[InMemoryOracleGateway, Depends(get_gateway)]


class VerificationRequestCreate(BaseModel):
    donor_address: str


@router.post("/requests", status_code=status.HTTP_201_CREATED)
async def request_verification(
    caller: Registrar, payload: VerificationRequestCreate, engine: Engine
) -> Dict[str, int]:
    request_id = await engine.request_death_verification(payload.donor_address, requester=caller.id)
    return {"request_id": request_id}


@router.get("/requests/pending", response_model=List[DeathVerificationRequest])
async def pending_requests(_: Reader, gateway: Gateway) -> List[DeathVerificationRequest]:
    return await gateway.pending_requests()


@router.get("/requests/{request_id}", response_model=VerificationStatus)
async def request_status(_: Reader, request_id: int, gateway: Gateway) -> VerificationStatus:
    return await gateway.get_status(request_id)


@router.post("/requests/{request_id}/fulfill", response_model=DeathVerificationRequest)
async def fulfill_request(
    caller: Attester, request_id: int, payload: VerificationFulfillment, gateway: Gateway
) -> DeathVerificationRequest:
    return await gateway.fulfill(request_id, payload.is_deceased, payload.evidence_cid, fulfilled_by=caller.id)


@router.get("/donors/{address}")
async def donor_verification(_: Reader, address: str, engine: Engine) -> Dict[str, str]:
    return {"donor": address, "state": await engine.death_verification_state(address)}


def init_router(services) -> None:
    router.services = services
