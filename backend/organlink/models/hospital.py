from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field

from .common import OrganType


class StaffRole(str, Enum):
    ADMIN = "Admin"
    SURGEON = "Surgeon"
    COORDINATOR = "Coordinator"
    NONE = "None"


class Hospital(BaseModel):
    address: str
    name: str
    region: str
    phone_number: str | None = None
    verified: bool = False
    # Open transplant slots per organ type; allocations reserve one each.
    capacity: Dict[OrganType, int] = Field(default_factory=dict)
    staff: Dict[str, StaffRole] = Field(default_factory=dict)
    registration_timestamp: datetime | None = None

    def capacity_for(self, organ_type: OrganType) -> int:
        return self.capacity.get(organ_type, 0)

    def with_capacity(self, organ_type: OrganType, capacity: int) -> "Hospital":
        return self.model_copy(update={"capacity": {**self.capacity, OrganType(organ_type): capacity}})

    def staff_role(self, address: str) -> StaffRole:
        return self.staff.get(address, StaffRole.NONE)

    def is_member(self, address: str) -> bool:
        return address == self.address or self.staff_role(address) != StaffRole.NONE


class HospitalCreate(BaseModel):
    address: str
    name: str
    region: str
    phone_number: str | None = None


class CapacityUpdate(BaseModel):
    organ_type: OrganType
    capacity: int = Field(ge=0)


class StaffAuthorization(BaseModel):
    staff_address: str
    role: StaffRole
