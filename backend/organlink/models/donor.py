from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .common import BloodType


class DonorStatus(str, Enum):
    ACTIVE = "Active"
    DEACTIVATED = "Deactivated"
    MATCHED = "Matched"
    DECEASED = "Deceased"


class Donor(BaseModel):
    address: str
    name: str
    age: int = Field(ge=0, le=130)
    blood_type: BloodType
    region: str
    status: DonorStatus = DonorStatus.ACTIVE
    registration_timestamp: datetime | None = None


class DonorCreate(BaseModel):
    address: str
    name: str
    age: int = Field(ge=0, le=130)
    blood_type: BloodType
    region: str
