from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Mapping

from ..models.user import Caller, CallerRole


# Capability names checked at the API boundary.
READ = "read"
REGISTER = "register"
WAITLIST = "waitlist"
ALLOCATE = "allocate"
CONFIRM = "confirm"
QUALITY = "quality"
ATTEST = "attest"
CONFIGURE = "configure"
# Act on any hospital's proposals without being on its staff.
OVERSEE = "oversee"

DEFAULT_GRANTS: Dict[CallerRole, FrozenSet[str]] = {
    "coordinator": frozenset({READ, REGISTER, WAITLIST, ALLOCATE, CONFIRM, QUALITY, OVERSEE}),
    "surgeon": frozenset({READ, WAITLIST, CONFIRM, QUALITY}),
    "hospital": frozenset({READ, CONFIRM}),
    "oracle": frozenset({READ, ATTEST}),
    "admin": frozenset({READ, REGISTER, WAITLIST, ALLOCATE, CONFIRM, QUALITY, ATTEST, CONFIGURE, OVERSEE}),
}


class AccessPolicy:
    """Maps caller roles to the capabilities they hold."""

    def __init__(self, grants: Mapping[CallerRole, Iterable[str]] | None = None) -> None:
        source = grants if grants is not None else DEFAULT_GRANTS
        self.grants: Dict[str, FrozenSet[str]] = {role: frozenset(caps) for role, caps in source.items()}

    def allows(self, caller: Caller, capability: str) -> bool:
        return capability in self.grants.get(caller.role, frozenset())
