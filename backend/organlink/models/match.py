from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class MatchScore(BaseModel):
    total_score: int
    blood_compatibility: int
    urgency_score: int
    waiting_time_score: int
    geographic_score: int
    medical_score: int
    is_compatible: bool


class ProposalStatus(str, Enum):
    PENDING = "Pending"
    MATCHED = "Matched"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


# A proposal in one of these states still holds its organ.
LIVE_PROPOSAL_STATUSES = frozenset({ProposalStatus.PENDING, ProposalStatus.MATCHED, ProposalStatus.CONFIRMED})


class MatchProposal(BaseModel):
    proposal_id: int
    organ_id: int
    recipient: str
    proposing_hospital: str | None = None
    score: MatchScore
    status: ProposalStatus = ProposalStatus.MATCHED
    proposal_timestamp: datetime
    is_emergency: bool = False

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_PROPOSAL_STATUSES


class RankedCandidate(BaseModel):
    recipient: str
    region: str
    score: MatchScore
    added_timestamp: datetime
    sequence: int
