from __future__ import annotations

from typing import Annotated, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from ..engine.allocation import AllocationEngine
from ..engine.hospitals import HospitalService
from ..models.common import utcnow
from ..models.donor import Donor, DonorCreate, DonorStatus
from ..models.hospital import CapacityUpdate, Hospital, HospitalCreate, StaffAuthorization
from ..models.recipient import Location, MedicalStatusUpdate, Recipient, RecipientCreate
from ..models.user import Caller
from ..registry.base import Registry
from ..utils.security import CONFIGURE, READ, REGISTER, WAITLIST
from .access import require_capability

router = APIRouter(tags=["registry"])
Reader = Annotated[Caller, Depends(require_capability(READ))]
Registrar = Annotated[Caller, Depends(require_capability(REGISTER))]
Clinician = Annotated[Caller, Depends(require_capability(WAITLIST))]
Administrator = Annotated[Caller, Depends(require_capability(CONFIGURE))]


def get_registry() -> Registry:
    return router.services.registry


def get_engine() -> AllocationEngine:
    return router.services.engine


def get_hospitals() -> HospitalService:
    return router.services.hospitals


Records = Annotated[Registry, Depends(get_registry)]
Engine = Annotated[AllocationEngine, Depends(get_engine)]
Hospitals = Annotated[HospitalService, Depends(get_hospitals)]


@router.post("/donors", response_model=Donor, status_code=status.HTTP_201_CREATED)
async def register_donor(_: Registrar, payload: DonorCreate, registry: Records) -> Donor:
    if await registry.get_donor(payload.address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Donor already registered")
    donor = Donor(**payload.model_dump(), registration_timestamp=utcnow())
    await registry.save_donor(donor)
    return donor


@router.get("/donors/{address}", response_model=Donor)
async def get_donor(_: Reader, address: str, registry: Records) -> Donor:
    donor = await registry.get_donor(address)
    if not donor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donor not found")
    return donor


@router.post("/donors/{address}/deactivate", response_model=Donor)
async def deactivate_donor(_: Registrar, address: str, registry: Records) -> Donor:
    donor = await registry.get_donor(address)
    if not donor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donor not found")
    if donor.status == DonorStatus.DECEASED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Donor is deceased")
    return await registry.set_donor_status(address, DonorStatus.DEACTIVATED)


@router.post("/recipients", response_model=Recipient, status_code=status.HTTP_201_CREATED)
async def register_recipient(_: Registrar, payload: RecipientCreate, registry: Records) -> Recipient:
    if await registry.get_recipient(payload.address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Recipient already registered")
    recipient = Recipient(
        address=payload.address,
        name=payload.name,
        age=payload.age,
        blood_type=payload.blood_type,
        location=Location(region=payload.region),
        registration_timestamp=utcnow(),
    )
    await registry.save_recipient(recipient)
    return recipient


@router.get("/recipients/{address}", response_model=Recipient)
async def get_recipient(_: Reader, address: str, registry: Records) -> Recipient:
    recipient = await registry.get_recipient(address)
    if not recipient:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")
    return recipient


@router.put("/recipients/{address}/medical-status", response_model=Recipient)
async def update_medical_status(_: Clinician, address: str, payload: MedicalStatusUpdate, engine: Engine) -> Recipient:
    return await engine.update_recipient_medical_status(address, payload.status)


@router.post("/hospitals", response_model=Hospital, status_code=status.HTTP_201_CREATED)
async def register_hospital(_: Registrar, payload: HospitalCreate, registry: Records) -> Hospital:
    if await registry.get_hospital(payload.address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Hospital already registered")
    hospital = Hospital(**payload.model_dump(), registration_timestamp=utcnow())
    await registry.save_hospital(hospital)
    return hospital


@router.get("/hospitals/{address}", response_model=Hospital)
async def get_hospital(_: Reader, address: str, registry: Records) -> Hospital:
    hospital = await registry.get_hospital(address)
    if not hospital:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hospital not found")
    return hospital


@router.post("/hospitals/{address}/verify", response_model=Hospital)
async def verify_hospital(_: Administrator, address: str, hospitals: Hospitals) -> Hospital:
    return await hospitals.verify_hospital(address)


@router.put("/hospitals/{address}/capacity", response_model=Hospital)
async def update_capacity(_: Registrar, address: str, payload: CapacityUpdate, hospitals: Hospitals) -> Hospital:
    return await hospitals.update_capacity(address, payload.organ_type, payload.capacity)


@router.post("/hospitals/{address}/staff", response_model=Hospital)
async def authorize_staff(_: Registrar, address: str, payload: StaffAuthorization, hospitals: Hospitals) -> Hospital:
    return await hospitals.authorize_staff(address, payload.staff_address, payload.role)


@router.get("/hospitals/{address}/staff/{staff_address}")
async def staff_role(_: Reader, address: str, staff_address: str, hospitals: Hospitals) -> Dict[str, str]:
    role = await hospitals.get_staff_role(address, staff_address)
    return {"hospital": address, "staff": staff_address, "role": role.value}


def init_router(services) -> None:
    router.services = services
