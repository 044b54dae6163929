from __future__ import annotations

import pytest

from organlink.errors import AlreadyPending, InvalidState, NotFound, RegistryUnavailable
from organlink.oracle.gateway import InMemoryOracleGateway
from organlink.registry.memory import InMemoryRegistry
from organlink.utils.ids import IdSequence


async def test_second_request_while_pending_is_rejected(gateway):
    first = await gateway.request_verification("D1", requester="coordinator-7")

    with pytest.raises(AlreadyPending):
        await gateway.request_verification("D1")

    other = await gateway.request_verification("D2")
    assert other == first + 1


async def test_unfulfilled_request_is_a_waiting_state(gateway):
    request_id = await gateway.request_verification("D1")

    status = await gateway.get_status(request_id)

    assert status.fulfilled is False
    assert status.is_deceased is False
    assert [request.request_id for request in await gateway.pending_requests()] == [request_id]


async def test_fulfillment_is_final_and_allows_a_new_request(gateway, clock):
    request_id = await gateway.request_verification("D1")
    clock.advance(hours=3)

    fulfilled = await gateway.fulfill(request_id, True, "bafy-death-cert", fulfilled_by="oracle-2")

    assert fulfilled.fulfilled_timestamp == clock.now
    assert fulfilled.fulfilled_by == "oracle-2"
    with pytest.raises(InvalidState):
        await gateway.fulfill(request_id, False)
    assert (await gateway.get_status(request_id)).evidence_cid == "bafy-death-cert"

    retry = await gateway.request_verification("D1")
    assert (await gateway.latest_request("D1")).request_id == retry


async def test_unknown_request_is_not_found(gateway):
    with pytest.raises(NotFound):
        await gateway.get_status(42)
    assert await gateway.latest_request("nobody") is None


async def test_subscribers_receive_fulfillments(gateway):
    received = []

    async def broken(request):
        raise RuntimeError("subscriber down")

    async def listener(request):
        received.append(request.request_id)

    gateway.subscribe(broken)
    gateway.subscribe(listener)
    request_id = await gateway.request_verification("D1")

    await gateway.fulfill(request_id, True)

    assert received == [request_id]


async def test_id_sequences_are_per_instance(clock):
    left = InMemoryOracleGateway(clock=clock)
    right = InMemoryOracleGateway(clock=clock, ids=IdSequence(start=100))

    assert await left.request_verification("D1") == 1
    assert await right.request_verification("D1") == 100


async def test_requests_are_written_through_and_reloaded(clock, registry):
    gateway = InMemoryOracleGateway(clock=clock, store=registry)
    first = await gateway.request_verification("D1")
    await gateway.fulfill(first, True, "bafy-cert")
    pending = await gateway.request_verification("D2")

    restarted = InMemoryOracleGateway(clock=clock, store=registry)
    restarted.load(await registry.list_verification_requests())

    assert (await restarted.get_status(first)).is_deceased is True
    assert (await restarted.latest_request("D2")).request_id == pending
    with pytest.raises(AlreadyPending):
        await restarted.request_verification("D2")
    assert await restarted.request_verification("D3") == pending + 1


async def test_failed_store_write_leaves_no_trace(clock):
    class OfflineStore(InMemoryRegistry):
        async def save_verification_request(self, request):
            raise RegistryUnavailable("request store offline")

    gateway = InMemoryOracleGateway(clock=clock, store=OfflineStore())

    with pytest.raises(RegistryUnavailable):
        await gateway.request_verification("D1")

    assert await gateway.latest_request("D1") is None
    assert await gateway.pending_requests() == []
