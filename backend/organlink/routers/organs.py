from __future__ import annotations

from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from ..engine.allocation import AllocationEngine
from ..engine.quality import OrganQualityService
from ..models.common import BloodType, OrganType
from ..models.organ import EmergencyStatusUpdate, Organ, OrganCreate, TestResult
from ..models.user import Caller
from ..utils.security import ALLOCATE, CONFIRM, QUALITY, READ, REGISTER
from .access import ensure_hospital_member, require_capability

router = APIRouter(prefix="/organs", tags=["organs"])
Reader = Annotated[Caller, Depends(require_capability(READ))]
Registrar = Annotated[Caller, Depends(require_capability(REGISTER))]
Allocator = Annotated[Caller, Depends(require_capability(ALLOCATE))]
Confirmer = Annotated[Caller, Depends(require_capability(CONFIRM))]
QualityOfficer = Annotated[Caller, Depends(require_capability(QUALITY))]


def get_engine() -> AllocationEngine:
    return router.services.engine


def get_quality() -> OrganQualityService:
    return router.services.quality


Engine = Annotated[AllocationEngine, Depends(get_engine)]
Quality = Annotated[OrganQualityService, Depends(get_quality)]


class MedicalDataUpdate(BaseModel):
    ipfs_hash: str


class TestResultsUpload(BaseModel):
    results: List[TestResult]


@router.post("", response_model=Organ, status_code=status.HTTP_201_CREATED)
async def register_organ(_: Registrar, payload: OrganCreate, engine: Engine) -> Organ:
    return await engine.register_organ(
        payload.donor_address,
        payload.organ_type,
        payload.region,
        is_emergency=payload.is_emergency,
        urgency_level=payload.urgency_level,
        medical_data_hash=payload.medical_data_hash,
    )


@router.get("/available", response_model=List[Organ])
async def available_organs(
    _: Reader, organ_type: OrganType, engine: Engine, blood_type: BloodType | None = None
) -> List[Organ]:
    return await engine.get_available_organs(organ_type, blood_type)


@router.get("/{organ_id}", response_model=Organ)
async def get_organ(_: Reader, organ_id: int, engine: Engine) -> Organ:
    return await engine.get_organ(organ_id)


@router.post("/{organ_id}/emergency", response_model=Organ)
async def set_emergency(_: Allocator, organ_id: int, payload: EmergencyStatusUpdate, engine: Engine) -> Organ:
    return await engine.set_emergency_status(organ_id, payload.is_emergency, payload.urgency_level)


@router.post("/{organ_id}/transplanted", response_model=Organ)
async def mark_transplanted(caller: Confirmer, request: Request, organ_id: int, engine: Engine) -> Organ:
    organ = await engine.get_organ(organ_id)
    await ensure_hospital_member(request, caller, organ.assigned_hospital)
    return await engine.mark_transplanted(organ_id)


@router.post("/{organ_id}/expired", response_model=Organ)
async def mark_expired(_: Allocator, organ_id: int, engine: Engine) -> Organ:
    return await engine.mark_expired(organ_id)


@router.post("/{organ_id}/rejected", response_model=Organ)
async def mark_rejected(caller: Confirmer, request: Request, organ_id: int, engine: Engine) -> Organ:
    organ = await engine.get_organ(organ_id)
    await ensure_hospital_member(request, caller, organ.assigned_hospital)
    return await engine.mark_rejected(organ_id)


@router.put("/{organ_id}/medical-data", response_model=Organ)
async def update_medical_data(_: QualityOfficer, organ_id: int, payload: MedicalDataUpdate, quality: Quality) -> Organ:
    return await quality.update_medical_data(organ_id, payload.ipfs_hash)


@router.post("/{organ_id}/test-results", response_model=Organ)
async def add_test_results(_: QualityOfficer, organ_id: int, payload: TestResultsUpload, quality: Quality) -> Organ:
    return await quality.add_test_results(organ_id, payload.results)


@router.post("/{organ_id}/validate", response_model=Organ)
async def validate_quality(_: QualityOfficer, organ_id: int, quality: Quality) -> Organ:
    return await quality.validate_organ_quality(organ_id)


@router.get("/{organ_id}/compatibility/{recipient}")
async def organ_compatibility(_: Reader, organ_id: int, recipient: str, quality: Quality) -> Dict[str, bool]:
    return await quality.get_organ_compatibility(organ_id, recipient)


def init_router(services) -> None:
    router.services = services
