from __future__ import annotations

from loguru import logger

from ..errors import NotFound
from ..models.common import OrganType
from ..models.hospital import Hospital, StaffRole
from ..registry.base import Registry
from .events import EngineEvent, EventSink, default_event_sink
from .locks import KeyedLocks, hospital_key


class HospitalService:
    """Transplant centre records: verification, open capacity and staff roles.

    Writes hold the hospital's lock so they never interleave with the capacity
    reservation an allocation makes.
    """

    def __init__(self, registry: Registry, locks: KeyedLocks, event_sink: EventSink = default_event_sink) -> None:
        self.registry = registry
        self.locks = locks
        self.event_sink = event_sink

    async def _require(self, address: str) -> Hospital:
        hospital = await self.registry.get_hospital(address)
        if hospital is None:
            raise NotFound(f"Hospital {address} not registered")
        return hospital

    async def verify_hospital(self, address: str) -> Hospital:
        async with self.locks.hold(hospital_key(address)):
            verified = (await self._require(address)).model_copy(update={"verified": True})
            await self.registry.save_hospital(verified)
        logger.info("Hospital {} credentials verified", address)
        await self.event_sink(EngineEvent(type="hospital_verified", payload={"hospital": address}))
        return verified

    async def update_capacity(self, address: str, organ_type: OrganType, capacity: int) -> Hospital:
        async with self.locks.hold(hospital_key(address)):
            updated = (await self._require(address)).with_capacity(organ_type, capacity)
            await self.registry.save_hospital(updated)
        logger.info("Hospital {} {} capacity set to {}", address, OrganType(organ_type).value, capacity)
        return updated

    async def authorize_staff(self, address: str, staff_address: str, role: StaffRole) -> Hospital:
        async with self.locks.hold(hospital_key(address)):
            hospital = await self._require(address)
            staff = {**hospital.staff, staff_address: StaffRole(role)}
            if role == StaffRole.NONE:
                staff.pop(staff_address)
            updated = hospital.model_copy(update={"staff": staff})
            await self.registry.save_hospital(updated)
        logger.info("Hospital {} staff {} authorized as {}", address, staff_address, StaffRole(role).value)
        await self.event_sink(
            EngineEvent(
                type="staff_authorized",
                payload={"hospital": address, "staff": staff_address, "role": StaffRole(role).value},
            )
        )
        return updated

    async def get_staff_role(self, address: str, staff_address: str) -> StaffRole:
        return (await self._require(address)).staff_role(staff_address)

    async def is_member(self, address: str | None, caller_id: str) -> bool:
        if address is None:
            return False
        hospital = await self.registry.get_hospital(address)
        return hospital is not None and hospital.is_member(caller_id)
