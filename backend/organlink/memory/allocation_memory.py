from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from ..engine.events import EngineEvent
from ..errors import RegistryUnavailable
from ..utils.logging import log_db_error


class AllocationMemory:
    """Journal of engine events, newest first on read.

    Backed by the ``allocation_events`` collection when a Mongo collection is
    supplied, otherwise by a bounded in-process buffer.
    """

    def __init__(self, collection: AsyncIOMotorCollection | None = None, limit: int = 200) -> None:
        self.collection = collection
        self.buffer: Deque[Dict[str, Any]] = deque(maxlen=limit)

    async def log(self, event: EngineEvent) -> None:
        document = {
            "type": event.type,
            "payload": event.payload,
            "timestamp": datetime.now(timezone.utc),
        }
        if self.collection is None:
            self.buffer.append(document)
            return
        try:
            await self.collection.insert_one(document)
        except PyMongoError as exc:
            log_db_error("allocation_memory.log", exc)
            raise RegistryUnavailable(f"Event journal write failed: {exc}") from exc

    async def history(self, limit: int = 20) -> List[Dict[str, Any]]:
        if self.collection is None:
            return list(reversed(self.buffer))[:limit]
        cursor = self.collection.find({}).sort("timestamp", -1).limit(limit)
        entries = []
        async for document in cursor:
            document["_id"] = str(document["_id"])
            entries.append(document)
        return entries
