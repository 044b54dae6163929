from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import BloodType


class MedicalStatus(str, Enum):
    WAITING = "Waiting"
    TRANSPLANTED = "Transplanted"
    CRITICAL = "Critical"
    STABLE = "Stable"
    REJECTED = "Rejected"


# Recipients in these states are no longer candidates for any organ.
TERMINAL_MEDICAL_STATUSES = frozenset({MedicalStatus.TRANSPLANTED, MedicalStatus.REJECTED})


class Location(BaseModel):
    region: str


class Recipient(BaseModel):
    address: str
    name: str
    age: int = Field(ge=0, le=130)
    blood_type: BloodType
    medical_status: MedicalStatus = MedicalStatus.WAITING
    location: Location
    registration_timestamp: datetime | None = None

    @property
    def region(self) -> str:
        return self.location.region


class RecipientCreate(BaseModel):
    address: str
    name: str
    age: int = Field(ge=0, le=130)
    blood_type: BloodType
    region: str


class MedicalStatusUpdate(BaseModel):
    status: MedicalStatus
