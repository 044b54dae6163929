from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class DeathVerificationRequest(BaseModel):
    request_id: int
    donor_address: str
    requester: str
    timestamp: datetime
    fulfilled: bool = False
    is_deceased: bool = False
    evidence_cid: str = ""
    fulfilled_timestamp: datetime | None = None
    fulfilled_by: str | None = None


class VerificationStatus(BaseModel):
    fulfilled: bool
    is_deceased: bool
    evidence_cid: str


class VerificationFulfillment(BaseModel):
    is_deceased: bool
    evidence_cid: str = ""
