from __future__ import annotations

from typing import Dict, FrozenSet

from ..models.common import BLOOD_TYPES

# Donor blood type -> recipient blood types it may be given to.
COMPATIBILITY_TABLE: Dict[str, FrozenSet[str]] = {
    "O-": frozenset(BLOOD_TYPES),
    "O+": frozenset({"O+", "A+", "B+", "AB+"}),
    "A-": frozenset({"A-", "A+", "AB-", "AB+"}),
    "A+": frozenset({"A+", "AB+"}),
    "B-": frozenset({"B-", "B+", "AB-", "AB+"}),
    "B+": frozenset({"B+", "AB+"}),
    "AB-": frozenset({"AB-", "AB+"}),
    "AB+": frozenset({"AB+"}),
}


def is_blood_compatible(donor_blood: str, recipient_blood: str) -> bool:
    """
    ABO/Rh compatibility of a donated organ with a recipient.

    O- donates to everyone and AB+ receives from everyone; every other pair
    must be an exact match or listed in ``COMPATIBILITY_TABLE``. Unknown blood
    types are never compatible.
    """
    if donor_blood not in COMPATIBILITY_TABLE or recipient_blood not in COMPATIBILITY_TABLE:
        return False
    if donor_blood == "O-" or recipient_blood == "AB+":
        return True
    if donor_blood == recipient_blood:
        return True
    return recipient_blood in COMPATIBILITY_TABLE[donor_blood]
