from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal


BloodType = Literal["O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"]
BLOOD_TYPES: tuple[str, ...] = ("O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+")


class OrganType(str, Enum):
    HEART = "Heart"
    LIVER = "Liver"
    KIDNEY = "Kidney"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
