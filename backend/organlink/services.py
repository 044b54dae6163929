from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from loguru import logger

from .database import Settings, get_database
from .engine.allocation import AllocationEngine
from .engine.events import EngineEvent, EventSink
from .engine.hospitals import HospitalService
from .engine.locks import KeyedLocks
from .engine.quality import OrganQualityService
from .errors import RegistryUnavailable
from .memory.allocation_memory import AllocationMemory
from .models.common import OrganType, utcnow
from .oracle.gateway import InMemoryOracleGateway
from .registry.base import Registry
from .registry.memory import InMemoryRegistry
from .registry.mongo import MongoRegistry
from .scoring.compatibility import CompatibilityScorer, ScoringPolicy
from .scoring.weights import ScoringWeights
from .utils.notifications import NotificationService, SmsNotification
from .utils.security import AccessPolicy
from .waitlist.manager import WaitingListManager


@dataclass
class Services:
    registry: Registry
    waitlist: WaitingListManager
    gateway: InMemoryOracleGateway
    engine: AllocationEngine
    quality: OrganQualityService
    hospitals: HospitalService
    memory: AllocationMemory
    notifications: NotificationService
    policy: AccessPolicy


async def alert_assigned_hospital(registry: Registry, notifications: NotificationService, proposal: dict) -> None:
    address = proposal.get("proposing_hospital")
    if not address:
        return
    hospital = await registry.get_hospital(address)
    if hospital is None or not hospital.phone_number:
        logger.info("No contact number for hospital {}; skipping allocation alert", address)
        return
    body = (
        f"OrganLink: organ {proposal['organ_id']} matched to recipient {proposal['recipient']} "
        f"(score {proposal['score']['total_score']}). Confirm proposal {proposal['proposal_id']}."
    )
    await notifications.send_sms(SmsNotification(to=hospital.phone_number, body=body))


def build_services(
    settings: Settings,
    broadcast: EventSink | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    if settings.registry_backend == "mongo":
        database = get_database()
        registry: Registry = MongoRegistry(database)
        memory = AllocationMemory(database.get_collection("allocation_events"), settings.event_history_limit)
    elif settings.registry_backend == "memory":
        registry = InMemoryRegistry()
        memory = AllocationMemory(limit=settings.event_history_limit)
    else:
        raise ValueError(f"Unknown registry backend: {settings.registry_backend}")

    notifications = NotificationService.from_settings(settings)

    async def publish(event: EngineEvent) -> None:
        try:
            await memory.log(event)
        except RegistryUnavailable as exc:
            logger.warning("Event {} not journaled: {}", event.type, exc)
        if event.type == "organ_allocated":
            await alert_assigned_hospital(registry, notifications, event.payload)
        if broadcast is not None:
            await broadcast(event)

    locks = KeyedLocks()
    waitlist = WaitingListManager(clock=clock)
    gateway = InMemoryOracleGateway(clock=clock, store=registry)
    engine = AllocationEngine(
        registry=registry,
        waitlist=waitlist,
        gateway=gateway,
        scorer=CompatibilityScorer(ScoringPolicy.from_settings(settings)),
        weights=ScoringWeights.from_settings(settings),
        clock=clock,
        event_sink=publish,
        preservation_hours={
            OrganType.HEART: settings.heart_preservation_hours,
            OrganType.LIVER: settings.liver_preservation_hours,
            OrganType.KIDNEY: settings.kidney_preservation_hours,
        },
        proposal_timeout=timedelta(minutes=settings.proposal_timeout_min),
        locks=locks,
    )
    gateway.subscribe(engine.handle_verification)
    quality = OrganQualityService(registry, locks, clock=clock, event_sink=publish)
    hospitals = HospitalService(registry, locks, event_sink=publish)
    return Services(
        registry=registry,
        waitlist=waitlist,
        gateway=gateway,
        engine=engine,
        quality=quality,
        hospitals=hospitals,
        memory=memory,
        notifications=notifications,
        policy=AccessPolicy(),
    )


async def load_persisted_state(services: Services) -> None:
    """Rebuild the in-memory waiting list and request book from the store."""
    services.waitlist.load(await services.registry.list_waitlist_entries())
    services.gateway.load(await services.registry.list_verification_requests())
