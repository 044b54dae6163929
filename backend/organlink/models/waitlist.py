from __future__ import annotations

from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, Field

from .common import OrganType


class Priority(IntEnum):
    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3
    EMERGENCY = 4


class WaitingListEntry(BaseModel):
    recipient: str
    organ_type: OrganType
    urgency_level: int = Field(ge=1, le=10)
    region: str
    priority: Priority = Priority.LOW
    added_timestamp: datetime
    is_active: bool = True
    sequence: int


class WaitingListAdd(BaseModel):
    recipient: str
    organ_type: OrganType
    urgency_level: int = Field(ge=1, le=10)
    region: str
    priority: Priority = Priority.LOW


class WaitingListPriorityUpdate(BaseModel):
    recipient: str
    organ_type: OrganType
    urgency_level: int = Field(ge=1, le=10)
    priority: Priority
    region: str
