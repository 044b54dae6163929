from __future__ import annotations

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from organlink.engine.events import EngineEvent
from organlink.errors import RegistryUnavailable
from organlink.memory.allocation_memory import AllocationMemory


async def test_buffer_history_is_newest_first_and_bounded():
    memory = AllocationMemory(limit=3)
    for index in range(5):
        await memory.log(EngineEvent(type=f"event_{index}", payload={"index": index}))

    history = await memory.history(10)

    assert [entry["type"] for entry in history] == ["event_4", "event_3", "event_2"]
    assert len(await memory.history(1)) == 1


class UnreachableCollection:
    async def insert_one(self, document):
        raise ServerSelectionTimeoutError("no servers available")


async def test_journal_write_failure_is_infrastructure_error():
    memory = AllocationMemory(UnreachableCollection())

    with pytest.raises(RegistryUnavailable):
        await memory.log(EngineEvent(type="organ_registered", payload={}))
