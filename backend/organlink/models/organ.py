from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from .common import BloodType, OrganType


class OrganStatus(str, Enum):
    AVAILABLE = "Available"
    MATCHED = "Matched"
    TRANSPLANTED = "Transplanted"
    EXPIRED = "Expired"
    REJECTED = "Rejected"


TERMINAL_ORGAN_STATUSES = frozenset({OrganStatus.TRANSPLANTED, OrganStatus.EXPIRED, OrganStatus.REJECTED})


class TestResult(BaseModel):
    test_type: str
    result_hash: str
    timestamp: datetime | None = None
    is_approved: bool = False


class Organ(BaseModel):
    token_id: int
    organ_type: OrganType
    blood_type: BloodType
    donor_address: str
    region: str
    status: OrganStatus = OrganStatus.AVAILABLE
    is_emergency: bool = False
    urgency_level: int = Field(default=5, ge=1, le=10)
    assigned_recipient: str | None = None
    assigned_hospital: str | None = None
    donation_timestamp: datetime
    expiry_timestamp: datetime
    medical_data_hash: str | None = None
    medical_data_updated: datetime | None = None
    test_results: List[TestResult] = Field(default_factory=list)
    quality_validated: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORGAN_STATUSES


class OrganCreate(BaseModel):
    donor_address: str
    organ_type: OrganType
    region: str
    is_emergency: bool = False
    urgency_level: int = Field(default=5, ge=1, le=10)
    medical_data_hash: str | None = None


class EmergencyStatusUpdate(BaseModel):
    is_emergency: bool
    urgency_level: int = Field(ge=1, le=10)
