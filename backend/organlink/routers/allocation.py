from __future__ import annotations

from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ..engine.allocation import AllocationEngine
from ..models.match import MatchProposal, MatchScore, ProposalStatus, RankedCandidate
from ..models.user import Caller
from ..utils.security import ALLOCATE, CONFIGURE, CONFIRM, READ
from .access import ensure_hospital_member, require_capability

router = APIRouter(tags=["allocation"])
Reader = Annotated[Caller, Depends(require_capability(READ))]
Allocator = Annotated[Caller, Depends(require_capability(ALLOCATE))]
Confirmer = Annotated[Caller, Depends(require_capability(CONFIRM))]
Administrator = Annotated[Caller, Depends(require_capability(CONFIGURE))]


def get_engine() -> AllocationEngine:
    return router.services.engine


Engine = Annotated[AllocationEngine, Depends(get_engine)]


class OrganRecipientRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organ_id: int = Field(alias="organId")
    recipient_id: str = Field(alias="recipientId")


class AllocateRequest(OrganRecipientRequest):
    hospital_id: str | None = Field(default=None, alias="hospitalId")


class BestMatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organ_id: int = Field(alias="organId")
    hospital_id: str | None = Field(default=None, alias="hospitalId")


class EmergencyMatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organ_id: int = Field(alias="organId")
    max_distance: float = Field(alias="maxDistance", ge=0)
    hospital_id: str | None = Field(default=None, alias="hospitalId")


class CancelProposalRequest(BaseModel):
    status: ProposalStatus = ProposalStatus.REJECTED


class WeightUpdate(BaseModel):
    weight: int


@router.post("/allocate", response_model=MatchProposal)
async def allocate(_: Allocator, payload: AllocateRequest, engine: Engine) -> MatchProposal:
    return await engine.allocate_organ(payload.organ_id, payload.recipient_id, hospital=payload.hospital_id)


@router.post("/allocate/best", response_model=MatchProposal)
async def allocate_best(_: Allocator, payload: BestMatchRequest, engine: Engine) -> MatchProposal:
    return await engine.allocate_best_match(payload.organ_id, hospital=payload.hospital_id)


@router.post("/match-score", response_model=MatchScore)
async def match_score(_: Reader, payload: OrganRecipientRequest, engine: Engine) -> MatchScore:
    return await engine.calculate_match_score(payload.organ_id, payload.recipient_id)


@router.post("/emergency-match", response_model=MatchProposal)
async def emergency_match(_: Allocator, payload: EmergencyMatchRequest, engine: Engine) -> MatchProposal:
    return await engine.trigger_emergency_match(payload.organ_id, payload.max_distance, hospital=payload.hospital_id)


@router.get("/organs/{organ_id}/compatible-recipients")
async def compatible_recipients(_: Reader, organ_id: int, engine: Engine) -> Dict[str, List[str]]:
    recipients = await engine.find_compatible_recipients(organ_id)
    return {"recipients": sorted(recipients)}


@router.get("/organs/{organ_id}/candidates", response_model=List[RankedCandidate])
async def ranked_candidates(_: Reader, organ_id: int, engine: Engine) -> List[RankedCandidate]:
    return await engine.rank_candidates(organ_id)


@router.get("/organs/{organ_id}/proposals", response_model=List[MatchProposal])
async def organ_proposals(_: Reader, organ_id: int, engine: Engine) -> List[MatchProposal]:
    return await engine.get_organ_match_proposals(organ_id)


@router.get("/recipients/{address}/matches")
async def recipient_matches(_: Reader, address: str, engine: Engine) -> Dict[str, List[int]]:
    return {"organs": await engine.get_recipient_matches(address)}


@router.post("/proposals/{proposal_id}/confirm", response_model=MatchProposal)
async def confirm_proposal(caller: Confirmer, request: Request, proposal_id: int, engine: Engine) -> MatchProposal:
    proposal = await engine.get_proposal(proposal_id)
    await ensure_hospital_member(request, caller, proposal.proposing_hospital)
    return await engine.confirm_proposal(proposal_id)


@router.post("/proposals/{proposal_id}/cancel", response_model=MatchProposal)
async def cancel_proposal(
    caller: Confirmer, request: Request, proposal_id: int, payload: CancelProposalRequest, engine: Engine
) -> MatchProposal:
    proposal = await engine.get_proposal(proposal_id)
    await ensure_hospital_member(request, caller, proposal.proposing_hospital)
    return await engine.cancel_proposal(proposal_id, payload.status)


@router.post("/sweeps/expiry")
async def expiry_sweep(_: Allocator, engine: Engine) -> Dict[str, List[int]]:
    return {
        "expired_organs": await engine.expire_overdue_organs(),
        "expired_proposals": await engine.expire_stale_proposals(),
    }


@router.get("/scoring/weights")
async def scoring_weights(_: Reader, engine: Engine) -> Dict[str, int]:
    return engine.weights.as_dict()


@router.get("/scoring/weights/{parameter}")
async def scoring_weight(_: Reader, parameter: str, engine: Engine) -> Dict[str, int | str]:
    return {"parameter": parameter, "weight": engine.get_scoring_weight(parameter)}


@router.put("/scoring/weights/{parameter}")
async def update_scoring_weight(_: Administrator, parameter: str, payload: WeightUpdate, engine: Engine) -> Dict[str, int]:
    return await engine.update_scoring_weight(parameter, payload.weight)


def init_router(services) -> None:
    router.services = services
