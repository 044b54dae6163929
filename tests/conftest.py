"""
Shared fixtures for the allocation core tests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from organlink.engine.allocation import AllocationEngine
from organlink.engine.events import EngineEvent
from organlink.engine.locks import KeyedLocks
from organlink.engine.quality import OrganQualityService
from organlink.models.common import OrganType
from organlink.models.donor import Donor
from organlink.models.hospital import Hospital
from organlink.models.organ import Organ
from organlink.models.recipient import Location, Recipient
from organlink.oracle.gateway import InMemoryOracleGateway
from organlink.registry.memory import InMemoryRegistry
from organlink.scoring.compatibility import CompatibilityScorer, ScoringPolicy
from organlink.scoring.geography import RegionMap
from organlink.scoring.weights import ScoringWeights
from organlink.waitlist.manager import WaitingListManager

T0 = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock so timestamps are reproducible."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_recipient(address: str, blood_type: str, region: str = "X") -> Recipient:
    return Recipient(
        address=address,
        name=f"Recipient {address}",
        age=45,
        blood_type=blood_type,
        location=Location(region=region),
        registration_timestamp=T0,
    )


def make_donor(address: str, blood_type: str, region: str = "X") -> Donor:
    return Donor(address=address, name=f"Donor {address}", age=38, blood_type=blood_type, region=region)


def make_organ(token_id: int = 1, blood_type: str = "O-", region: str = "X", **overrides) -> Organ:
    fields = {
        "token_id": token_id,
        "organ_type": OrganType.LIVER,
        "blood_type": blood_type,
        "donor_address": "D1",
        "region": region,
        "urgency_level": 5,
        "donation_timestamp": T0,
        "expiry_timestamp": T0 + timedelta(hours=12),
    }
    fields.update(overrides)
    return Organ(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> List[EngineEvent]:
    return []


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def waitlist(clock) -> WaitingListManager:
    return WaitingListManager(clock=clock)


@pytest.fixture
def gateway(clock) -> InMemoryOracleGateway:
    return InMemoryOracleGateway(clock=clock)


@pytest.fixture
def region_map() -> RegionMap:
    return RegionMap({"X|Y": 200.0, "X|Z": 900.0})


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def engine(registry, waitlist, gateway, clock, events, region_map, locks) -> AllocationEngine:
    async def sink(event: EngineEvent) -> None:
        events.append(event)

    engine = AllocationEngine(
        registry=registry,
        waitlist=waitlist,
        gateway=gateway,
        scorer=CompatibilityScorer(ScoringPolicy(regions=region_map)),
        weights=ScoringWeights(),
        clock=clock,
        event_sink=sink,
        locks=locks,
    )
    gateway.subscribe(engine.handle_verification)
    return engine


@pytest.fixture
def quality(registry, locks, clock, events) -> OrganQualityService:
    async def sink(event: EngineEvent) -> None:
        events.append(event)

    return OrganQualityService(registry, locks, clock=clock, event_sink=sink)


@pytest.fixture
def verified_hospital() -> Hospital:
    return Hospital(
        address="H1",
        name="General Hospital",
        region="X",
        phone_number="+1 (555) 010-0199",
        verified=True,
        capacity={OrganType.LIVER: 2, OrganType.HEART: 1},
    )


async def register_deceased_donor(engine: AllocationEngine, address: str, blood_type: str, region: str = "X") -> None:
    """Register a donor and attest their death through the gateway."""
    await engine.registry.save_donor(make_donor(address, blood_type, region))
    request_id = await engine.request_death_verification(address)
    await engine.gateway.fulfill(request_id, True, "bafy-evidence")
