from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List

from loguru import logger

from ..errors import AlreadyPending, InvalidState, NotFound
from ..models.common import utcnow
from ..models.oracle import DeathVerificationRequest, VerificationStatus
from ..registry.base import Registry
from ..utils.ids import IdSequence

VerificationSubscriber = Callable[[DeathVerificationRequest], Awaitable[None]]


class OracleAttestationGateway(ABC):
    """Death attestation contract consumed by the allocation core.

    Fulfillment is asynchronous and may never arrive; an unfulfilled request
    is a normal waiting state, reported through :meth:`get_status`.
    """

    @abstractmethod
    async def request_verification(self, donor_address: str, requester: str = "system") -> int: ...

    @abstractmethod
    async def get_status(self, request_id: int) -> VerificationStatus: ...

    @abstractmethod
    async def latest_request(self, donor_address: str) -> DeathVerificationRequest | None: ...

    @abstractmethod
    def subscribe(self, callback: VerificationSubscriber) -> None: ...


class InMemoryOracleGateway(OracleAttestationGateway):
    """Request book kept in memory and, when a store is given, written through to it."""

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        ids: IdSequence | None = None,
        store: Registry | None = None,
    ) -> None:
        self.clock = clock
        self.store = store
        self._ids = ids or IdSequence()
        self._requests: Dict[int, DeathVerificationRequest] = {}
        self._latest: Dict[str, int] = {}
        self._subscribers: List[VerificationSubscriber] = []

    def load(self, requests: Iterable[DeathVerificationRequest]) -> None:
        """Replace the request book with stored requests."""
        self._requests = {}
        self._latest = {}
        for request in sorted(requests, key=lambda item: item.request_id):
            self._requests[request.request_id] = request.model_copy()
            self._latest[request.donor_address] = request.request_id
            self._ids.advance_past(request.request_id)
        logger.info("Verification requests loaded: {}", len(self._requests))

    async def _persist(self, request: DeathVerificationRequest) -> None:
        if self.store is not None:
            await self.store.save_verification_request(request)

    async def request_verification(self, donor_address: str, requester: str = "system") -> int:
        latest_id = self._latest.get(donor_address)
        if latest_id is not None and not self._requests[latest_id].fulfilled:
            raise AlreadyPending(f"Verification request {latest_id} for donor {donor_address} is still pending")
        request_id = self._ids()
        request = DeathVerificationRequest(
            request_id=request_id,
            donor_address=donor_address,
            requester=requester,
            timestamp=self.clock(),
        )
        self._requests[request_id] = request
        self._latest[donor_address] = request_id
        try:
            await self._persist(request)
        except Exception:
            del self._requests[request_id]
            if latest_id is None:
                del self._latest[donor_address]
            else:
                self._latest[donor_address] = latest_id
            raise
        logger.info("Death verification requested: request {} for donor {} by {}", request_id, donor_address, requester)
        return request_id

    def _get(self, request_id: int) -> DeathVerificationRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFound(f"Verification request {request_id} does not exist")
        return request

    async def get_request(self, request_id: int) -> DeathVerificationRequest:
        return self._get(request_id).model_copy()

    async def get_status(self, request_id: int) -> VerificationStatus:
        request = self._get(request_id)
        return VerificationStatus(
            fulfilled=request.fulfilled,
            is_deceased=request.is_deceased,
            evidence_cid=request.evidence_cid,
        )

    async def latest_request(self, donor_address: str) -> DeathVerificationRequest | None:
        request_id = self._latest.get(donor_address)
        return self._requests[request_id].model_copy() if request_id is not None else None

    async def pending_requests(self) -> List[DeathVerificationRequest]:
        return [request.model_copy() for request in self._requests.values() if not request.fulfilled]

    async def fulfill(
        self,
        request_id: int,
        is_deceased: bool,
        evidence_cid: str = "",
        fulfilled_by: str = "oracle",
    ) -> DeathVerificationRequest:
        request = self._get(request_id)
        if request.fulfilled:
            raise InvalidState(f"Verification request {request_id} is already fulfilled")
        fulfilled = request.model_copy(
            update={
                "fulfilled": True,
                "is_deceased": is_deceased,
                "evidence_cid": evidence_cid,
                "fulfilled_timestamp": self.clock(),
                "fulfilled_by": fulfilled_by,
            }
        )
        self._requests[request_id] = fulfilled
        try:
            await self._persist(fulfilled)
        except Exception:
            self._requests[request_id] = request
            raise
        logger.info(
            "Death verification fulfilled: request {} donor {} deceased={} by {}",
            request_id,
            request.donor_address,
            is_deceased,
            fulfilled_by,
        )
        await self._publish(fulfilled)
        return fulfilled.model_copy()

    def subscribe(self, callback: VerificationSubscriber) -> None:
        self._subscribers.append(callback)

    async def _publish(self, request: DeathVerificationRequest) -> None:
        for callback in list(self._subscribers):
            try:
                await callback(request.model_copy())
            except Exception as exc:
                logger.exception("Verification subscriber failed for request {}: {}", request.request_id, exc)
