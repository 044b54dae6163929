from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable

from loguru import logger

from ..errors import InvalidInput, InvalidState, NotEligible, NotFound
from ..models.common import utcnow
from ..models.organ import Organ, TestResult
from ..registry.base import Registry
from ..scoring.blood import is_blood_compatible
from .events import EngineEvent, EventSink, default_event_sink
from .locks import KeyedLocks, organ_key


class OrganQualityService:
    """Medical data, laboratory results and quality validation of retrieved organs.

    A validated organ earns the full medical component of its match scores.
    Quality data can only change while the organ is still in play.
    """

    def __init__(
        self,
        registry: Registry,
        locks: KeyedLocks,
        clock: Callable[[], datetime] = utcnow,
        event_sink: EventSink = default_event_sink,
    ) -> None:
        self.registry = registry
        self.locks = locks
        self.clock = clock
        self.event_sink = event_sink

    async def _require_open_organ(self, token_id: int) -> Organ:
        organ = await self.registry.get_organ(token_id)
        if organ is None:
            raise NotFound(f"Organ {token_id} does not exist")
        if organ.is_terminal:
            raise InvalidState(f"Organ {token_id} is {organ.status.value}")
        return organ

    async def update_medical_data(self, token_id: int, ipfs_hash: str) -> Organ:
        if not ipfs_hash or not ipfs_hash.strip():
            raise InvalidInput("Medical data hash is required")
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_open_organ(token_id)
            # New medical data invalidates any earlier quality sign-off.
            updated = organ.model_copy(
                update={
                    "medical_data_hash": ipfs_hash.strip(),
                    "medical_data_updated": self.clock(),
                    "quality_validated": False,
                }
            )
            await self.registry.save_organ(updated)
        logger.info("Medical data updated for organ {}", token_id)
        return updated

    async def add_test_results(self, token_id: int, results: Iterable[TestResult]) -> Organ:
        now = self.clock()
        incoming = [result.model_copy(update={"timestamp": now, "is_approved": False}) for result in results]
        if not incoming:
            raise InvalidInput("At least one test result is required")
        for result in incoming:
            if not result.test_type.strip() or not result.result_hash.strip():
                raise InvalidInput("Test results need a type and a result hash")
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_open_organ(token_id)
            updated = organ.model_copy(update={"test_results": [*organ.test_results, *incoming]})
            await self.registry.save_organ(updated)
        logger.info("Added {} test result(s) to organ {}", len(incoming), token_id)
        return updated

    async def validate_organ_quality(self, token_id: int) -> Organ:
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_open_organ(token_id)
            if not organ.medical_data_hash:
                raise NotEligible(f"Organ {token_id} has no medical data on record")
            if not organ.test_results:
                raise NotEligible(f"Organ {token_id} has no test results on record")
            approved = [result.model_copy(update={"is_approved": True}) for result in organ.test_results]
            validated = organ.model_copy(update={"test_results": approved, "quality_validated": True})
            await self.registry.save_organ(validated)
        logger.info("Organ {} quality validated with {} test result(s)", token_id, len(approved))
        await self.event_sink(EngineEvent("organ_quality_validated", {"organ_id": token_id}))
        return validated

    async def get_organ_compatibility(self, token_id: int, recipient: str) -> Dict[str, bool]:
        async with self.locks.hold(organ_key(token_id)):
            organ = await self.registry.get_organ(token_id)
        if organ is None:
            raise NotFound(f"Organ {token_id} does not exist")
        record = await self.registry.get_recipient(recipient)
        if record is None:
            raise NotFound(f"Recipient {recipient} not registered")
        blood = is_blood_compatible(organ.blood_type, record.blood_type)
        return {
            "blood_compatible": blood,
            "quality_validated": organ.quality_validated,
            "is_compatible": blood and organ.quality_validated,
        }
