from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Set

from loguru import logger

from ..errors import InvalidInput, InvalidState, NoCandidate, NotEligible, NotFound
from ..models.common import OrganType, utcnow
from ..models.donor import DonorStatus
from ..models.hospital import Hospital
from ..models.match import MatchProposal, MatchScore, ProposalStatus, RankedCandidate
from ..models.oracle import DeathVerificationRequest
from ..models.organ import Organ, OrganStatus
from ..models.recipient import TERMINAL_MEDICAL_STATUSES, MedicalStatus, Recipient
from ..models.waitlist import Priority, WaitingListEntry
from ..oracle.gateway import OracleAttestationGateway
from ..registry.base import Registry
from ..scoring.blood import is_blood_compatible
from ..scoring.compatibility import MAX_URGENCY, CompatibilityScorer
from ..scoring.weights import ScoringWeights
from ..utils.ids import IdSequence
from ..waitlist.manager import WaitingListManager
from .events import EngineEvent, EventSink, default_event_sink
from .locks import KeyedLocks, hospital_key, organ_key, recipient_key

DEFAULT_PRESERVATION_HOURS: Dict[OrganType, int] = {
    OrganType.HEART: 6,
    OrganType.LIVER: 12,
    OrganType.KIDNEY: 36,
}


def candidate_key(candidate: RankedCandidate) -> tuple:
    return (-candidate.score.total_score, candidate.added_timestamp, candidate.sequence)


class AllocationEngine:
    """Scores, ranks and binds organs to waiting recipients.

    Every state change of an organ happens while holding that organ's lock.
    Waiting-list changes hold the recipient's lock and hospital record
    changes hold the hospital's lock; allocation takes all three, organ first.
    ``allocate_organ`` applies its effects together: organ status and assigned
    recipient, waiting-list deactivation, the hospital capacity reservation and
    the new proposal. If a store write fails midway the earlier effects are
    reverted before the error propagates.

    Organ and proposal ids are reconciled with the highest id already stored
    before each one is handed out, so a restarted process never reuses one.
    """

    def __init__(
        self,
        registry: Registry,
        waitlist: WaitingListManager,
        gateway: OracleAttestationGateway,
        scorer: CompatibilityScorer | None = None,
        weights: ScoringWeights | None = None,
        clock: Callable[[], datetime] = utcnow,
        event_sink: EventSink = default_event_sink,
        organ_ids: IdSequence | None = None,
        proposal_ids: IdSequence | None = None,
        preservation_hours: Dict[OrganType, int] | None = None,
        proposal_timeout: timedelta = timedelta(minutes=120),
        locks: KeyedLocks | None = None,
    ) -> None:
        self.registry = registry
        self.waitlist = waitlist
        self.gateway = gateway
        self.scorer = scorer or CompatibilityScorer()
        self.weights = weights or ScoringWeights()
        self.clock = clock
        self.event_sink = event_sink
        self.locks = locks or KeyedLocks()
        self.preservation_hours = {**DEFAULT_PRESERVATION_HOURS, **(preservation_hours or {})}
        self.proposal_timeout = proposal_timeout
        self._organ_ids = organ_ids or IdSequence()
        self._proposal_ids = proposal_ids or IdSequence()
        self._handled_verifications: Set[int] = set()

    async def _emit(self, event_type: str, payload: Dict) -> None:
        await self.event_sink(EngineEvent(type=event_type, payload=payload))

    async def _require_organ(self, token_id: int) -> Organ:
        organ = await self.registry.get_organ(token_id)
        if organ is None:
            raise NotFound(f"Organ {token_id} does not exist")
        return organ

    async def _require_recipient(self, address: str) -> Recipient:
        recipient = await self.registry.get_recipient(address)
        if recipient is None:
            raise NotFound(f"Recipient {address} not registered")
        return recipient

    async def _next_organ_id(self) -> int:
        self._organ_ids.advance_past(await self.registry.max_organ_id())
        return self._organ_ids()

    async def _next_proposal_id(self) -> int:
        self._proposal_ids.advance_past(await self.registry.max_proposal_id())
        return self._proposal_ids()

    async def get_organ(self, token_id: int) -> Organ:
        async with self.locks.hold(organ_key(token_id)):
            return await self._require_organ(token_id)

    async def get_available_organs(self, organ_type: OrganType, blood_type: str | None = None) -> List[Organ]:
        return await self.registry.list_organs(organ_type=organ_type, status=OrganStatus.AVAILABLE, blood_type=blood_type)

    # Death attestation and organ retrieval

    async def request_death_verification(self, donor_address: str, requester: str = "system") -> int:
        if await self.registry.get_donor(donor_address) is None:
            raise NotFound(f"Donor {donor_address} not registered")
        request_id = await self.gateway.request_verification(donor_address, requester)
        await self._emit("verification_requested", {"request_id": request_id, "donor": donor_address})
        return request_id

    async def death_verification_state(self, donor_address: str) -> str:
        latest = await self.gateway.latest_request(donor_address)
        if latest is None:
            return "not_requested"
        status = await self.gateway.get_status(latest.request_id)
        if not status.fulfilled:
            return "pending"
        return "deceased" if status.is_deceased else "not_deceased"

    async def handle_verification(self, request: DeathVerificationRequest) -> None:
        if request.request_id in self._handled_verifications:
            logger.debug("Verification {} already handled", request.request_id)
            return
        if not request.fulfilled:
            return
        if request.is_deceased:
            donor = await self.registry.get_donor(request.donor_address)
            if donor is None:
                logger.warning("Verification {} refers to unknown donor {}", request.request_id, request.donor_address)
            elif donor.status != DonorStatus.DECEASED:
                await self.registry.set_donor_status(request.donor_address, DonorStatus.DECEASED)
                logger.info("Donor {} confirmed deceased (request {})", request.donor_address, request.request_id)
        self._handled_verifications.add(request.request_id)
        await self._emit(
            "donor_deceased" if request.is_deceased else "death_not_confirmed",
            {"request_id": request.request_id, "donor": request.donor_address, "evidence_cid": request.evidence_cid},
        )

    async def register_organ(
        self,
        donor_address: str,
        organ_type: OrganType,
        region: str,
        is_emergency: bool = False,
        urgency_level: int = 5,
        medical_data_hash: str | None = None,
    ) -> Organ:
        donor = await self.registry.get_donor(donor_address)
        if donor is None:
            raise NotFound(f"Donor {donor_address} not registered")
        state = await self.death_verification_state(donor_address)
        if state != "deceased":
            raise NotEligible(f"Donor {donor_address} death not attested (verification {state})")
        if not 1 <= urgency_level <= MAX_URGENCY:
            raise InvalidInput("Urgency level must be between 1 and 10")
        organ_type = OrganType(organ_type)
        token_id = await self._next_organ_id()
        now = self.clock()
        organ = Organ(
            token_id=token_id,
            organ_type=organ_type,
            blood_type=donor.blood_type,
            donor_address=donor_address,
            region=region,
            is_emergency=is_emergency,
            urgency_level=urgency_level,
            donation_timestamp=now,
            expiry_timestamp=now + timedelta(hours=self.preservation_hours[organ_type]),
            medical_data_hash=medical_data_hash,
            medical_data_updated=now if medical_data_hash else None,
        )
        await self.registry.insert_organ(organ)
        logger.info("Organ {} registered: {} {} from donor {}", organ.token_id, organ_type.value, donor.blood_type, donor_address)
        await self._emit("organ_registered", organ.model_dump(mode="json"))
        return organ

    async def set_emergency_status(self, token_id: int, is_emergency: bool, urgency_level: int) -> Organ:
        if not 1 <= urgency_level <= MAX_URGENCY:
            raise InvalidInput("Urgency level must be between 1 and 10")
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_organ(token_id)
            if organ.status != OrganStatus.AVAILABLE:
                raise InvalidState(f"Organ {token_id} is {organ.status.value}; emergency status applies to available organs")
            updated = organ.model_copy(update={"is_emergency": is_emergency, "urgency_level": urgency_level})
            await self.registry.save_organ(updated)
        await self._emit("emergency_status", {"organ_id": token_id, "is_emergency": is_emergency, "urgency_level": urgency_level})
        return updated

    # Waiting list

    async def _store_entry(self, entry: WaitingListEntry, undo: Callable[[], None]) -> None:
        try:
            await self.registry.save_waitlist_entry(entry)
        except Exception:
            undo()
            raise

    async def add_to_waiting_list(
        self,
        recipient: str,
        organ_type: OrganType,
        urgency_level: int,
        region: str,
        priority: Priority = Priority.LOW,
    ) -> WaitingListEntry:
        async with self.locks.hold(recipient_key(recipient)):
            record = await self._require_recipient(recipient)
            if record.medical_status in TERMINAL_MEDICAL_STATUSES:
                raise NotEligible(f"Recipient {recipient} is {record.medical_status.value}")
            entry = self.waitlist.add(recipient, organ_type, urgency_level, region, priority)
            await self._store_entry(entry, lambda: self.waitlist.discard(entry.sequence))
        await self._emit("waitlist_added", entry.model_dump(mode="json"))
        return entry

    async def update_waiting_list_priority(
        self,
        recipient: str,
        organ_type: OrganType,
        urgency_level: int,
        priority: Priority,
        region: str,
    ) -> WaitingListEntry:
        async with self.locks.hold(recipient_key(recipient)):
            previous = self.waitlist.get_active(recipient, organ_type)
            entry = self.waitlist.update_priority(recipient, organ_type, urgency_level, priority, region)
            await self._store_entry(entry, lambda: self.waitlist.reset(previous))
        await self._emit("waitlist_updated", entry.model_dump(mode="json"))
        return entry

    async def withdraw_from_waiting_list(self, recipient: str, organ_type: OrganType) -> WaitingListEntry | None:
        """Deactivate the recipient's entry; ``None`` when there was nothing active."""
        async with self.locks.hold(recipient_key(recipient)):
            await self._require_recipient(recipient)
            entry = self.waitlist.deactivate(recipient, organ_type)
            if entry is None:
                return None
            await self._store_entry(entry, lambda: self.waitlist.restore(entry))
        await self._emit("waitlist_withdrawn", entry.model_dump(mode="json"))
        return entry

    def get_waiting_list(
        self, organ_type: OrganType, region: str, include_inactive: bool = False
    ) -> List[WaitingListEntry]:
        return self.waitlist.get_by_organ_region(organ_type, region, include_inactive=include_inactive)

    def prioritized_waiting_list(self, organ_type: OrganType, region: str) -> List[WaitingListEntry]:
        return self.waitlist.prioritize(organ_type, region)

    async def update_recipient_medical_status(self, recipient: str, status: MedicalStatus) -> Recipient:
        async with self.locks.hold(recipient_key(recipient)):
            updated = await self._set_medical_status(recipient, status)
        await self._emit("recipient_status", {"recipient": recipient, "status": status.value})
        return updated

    async def _set_medical_status(self, recipient: str, status: MedicalStatus) -> Recipient:
        updated = await self.registry.set_recipient_status(recipient, status)
        if status in TERMINAL_MEDICAL_STATUSES:
            # The recipient record is already terminal, so a failed write leaves
            # stale active rows that ranking skips.
            for entry in self.waitlist.deactivate_all(recipient):
                await self.registry.save_waitlist_entry(entry)
        return updated

    # Matching

    def _score(self, organ: Organ, recipient: Recipient, entry: WaitingListEntry | None) -> MatchScore:
        return self.scorer.score(organ, recipient, self.weights, entry=entry, now=self.clock())

    async def find_compatible_recipients(self, token_id: int) -> Set[str]:
        organ = await self.get_organ(token_id)
        compatible: Set[str] = set()
        for entry in self.waitlist.active_entries(organ.organ_type):
            recipient = await self.registry.get_recipient(entry.recipient)
            if recipient is None or recipient.medical_status in TERMINAL_MEDICAL_STATUSES:
                continue
            if is_blood_compatible(organ.blood_type, recipient.blood_type):
                compatible.add(entry.recipient)
        return compatible

    async def calculate_match_score(self, token_id: int, recipient: str) -> MatchScore:
        organ = await self.get_organ(token_id)
        record = await self._require_recipient(recipient)
        entry = self.waitlist.get_active(recipient, organ.organ_type)
        return self._score(organ, record, entry)

    async def _rank(self, organ: Organ, entries: Iterable[WaitingListEntry]) -> List[RankedCandidate]:
        ranked: List[RankedCandidate] = []
        for entry in entries:
            recipient = await self.registry.get_recipient(entry.recipient)
            if recipient is None:
                logger.warning("Waiting-list entry {} refers to unknown recipient {}", entry.sequence, entry.recipient)
                continue
            if recipient.medical_status in TERMINAL_MEDICAL_STATUSES:
                continue
            score = self._score(organ, recipient, entry)
            if not score.is_compatible:
                continue
            ranked.append(
                RankedCandidate(
                    recipient=entry.recipient,
                    region=entry.region,
                    score=score,
                    added_timestamp=entry.added_timestamp,
                    sequence=entry.sequence,
                )
            )
        ranked.sort(key=candidate_key)
        return ranked

    async def rank_candidates(self, token_id: int, regions: List[str] | None = None) -> List[RankedCandidate]:
        organ = await self.get_organ(token_id)
        entries: List[WaitingListEntry] = []
        for region in regions or [organ.region]:
            entries.extend(self.waitlist.prioritize(organ.organ_type, region))
        return await self._rank(organ, entries)

    # Allocation

    async def allocate_organ(
        self,
        token_id: int,
        recipient: str,
        hospital: str | None = None,
        is_emergency: bool = False,
    ) -> MatchProposal:
        keys = [organ_key(token_id), recipient_key(recipient)]
        if hospital is not None:
            keys.append(hospital_key(hospital))
        async with self.locks.hold(*keys):
            organ = await self._require_organ(token_id)
            record = await self._require_recipient(recipient)
            if organ.status != OrganStatus.AVAILABLE:
                raise NotEligible(f"Organ {token_id} is {organ.status.value}, not Available")
            site = await self._check_hospital(hospital, organ.organ_type) if hospital is not None else None
            proposal_id = await self._next_proposal_id()

            # No awaits from here until the writes: the entry read below is the one deactivated.
            entry = self.waitlist.get_active(recipient, organ.organ_type)
            if entry is None:
                raise NotEligible(f"Recipient {recipient} has no active {organ.organ_type.value} waiting-list entry")
            if record.medical_status in TERMINAL_MEDICAL_STATUSES:
                raise NotEligible(f"Recipient {recipient} is {record.medical_status.value}")
            if not is_blood_compatible(organ.blood_type, record.blood_type):
                raise NotEligible(f"Blood type {organ.blood_type} is incompatible with {record.blood_type}")

            proposal = MatchProposal(
                proposal_id=proposal_id,
                organ_id=token_id,
                recipient=recipient,
                proposing_hospital=hospital,
                score=self._score(organ, record, entry),
                status=ProposalStatus.MATCHED,
                proposal_timestamp=self.clock(),
                is_emergency=is_emergency,
            )
            matched = organ.model_copy(
                update={
                    "status": OrganStatus.MATCHED,
                    "assigned_recipient": recipient,
                    "assigned_hospital": hospital,
                }
            )
            deactivated = self.waitlist.deactivate(recipient, organ.organ_type)
            if deactivated is None:
                raise NotEligible(f"Recipient {recipient} left the {organ.organ_type.value} waiting list")
            try:
                await self.registry.save_waitlist_entry(deactivated)
                if site is not None:
                    reserved = site.with_capacity(organ.organ_type, site.capacity_for(organ.organ_type) - 1)
                    await self.registry.save_hospital(reserved)
                await self.registry.save_organ(matched)
                await self.registry.insert_proposal(proposal)
            except Exception:
                await self._restore_entry(deactivated)
                if site is not None:
                    await self._restore_hospital(site)
                await self._restore_organ(organ)
                raise

        logger.info(
            "Organ {} allocated to {} (score {}, proposal {})",
            token_id,
            recipient,
            proposal.score.total_score,
            proposal.proposal_id,
        )
        await self._emit("organ_allocated", proposal.model_dump(mode="json"))
        return proposal

    async def _restore_entry(self, snapshot: WaitingListEntry) -> None:
        self.waitlist.restore(snapshot)
        try:
            await self.registry.save_waitlist_entry(snapshot.model_copy(update={"is_active": True}))
        except Exception as exc:
            logger.error("Failed to restore waiting-list entry {} after aborted allocation: {}", snapshot.sequence, exc)

    async def _restore_hospital(self, hospital: Hospital) -> None:
        try:
            await self.registry.save_hospital(hospital)
        except Exception as exc:
            logger.error("Failed to restore hospital {} after aborted allocation: {}", hospital.address, exc)

    async def _restore_organ(self, organ: Organ) -> None:
        try:
            await self.registry.save_organ(organ)
        except Exception as exc:
            logger.error("Failed to restore organ {} after aborted allocation: {}", organ.token_id, exc)

    async def _check_hospital(self, address: str, organ_type: OrganType) -> Hospital:
        hospital = await self.registry.get_hospital(address)
        if hospital is None:
            raise NotFound(f"Hospital {address} not registered")
        if not hospital.verified:
            raise NotEligible(f"Hospital {address} credentials are not verified")
        if hospital.capacity_for(organ_type) <= 0:
            raise NotEligible(f"Hospital {address} has no {organ_type.value} transplant capacity")
        return hospital

    async def _release_capacity(self, address: str | None, organ_type: OrganType) -> None:
        """Give back the slot an allocation reserved once it will not go ahead."""
        if address is None:
            return
        async with self.locks.hold(hospital_key(address)):
            hospital = await self.registry.get_hospital(address)
            if hospital is None:
                logger.warning("Hospital {} vanished; {} capacity not released", address, organ_type.value)
                return
            await self.registry.save_hospital(hospital.with_capacity(organ_type, hospital.capacity_for(organ_type) + 1))

    async def allocate_best_match(self, token_id: int, hospital: str | None = None) -> MatchProposal:
        ranked = await self.rank_candidates(token_id)
        if not ranked:
            raise NoCandidate(f"No compatible recipient in the region of organ {token_id}")
        return await self.allocate_organ(token_id, ranked[0].recipient, hospital=hospital)

    async def trigger_emergency_match(
        self, token_id: int, max_distance: float, hospital: str | None = None
    ) -> MatchProposal:
        if max_distance < 0:
            raise InvalidInput("Maximum distance cannot be negative")
        organ = await self.get_organ(token_id)
        if not (organ.is_emergency or organ.urgency_level >= MAX_URGENCY):
            raise NotEligible(f"Organ {token_id} is not flagged for emergency allocation")
        if organ.status != OrganStatus.AVAILABLE:
            raise NotEligible(f"Organ {token_id} is {organ.status.value}, not Available")
        regions = self.scorer.policy.regions.within(
            organ.region, max_distance, self.waitlist.regions(organ.organ_type)
        )
        ranked = await self.rank_candidates(token_id, regions=regions) if regions else []
        if not ranked:
            raise NoCandidate(f"No compatible recipient within {max_distance} km of organ {token_id}")
        best = ranked[0]
        logger.warning(
            "Emergency match for organ {}: {} in {} (score {})",
            token_id,
            best.recipient,
            best.region,
            best.score.total_score,
        )
        return await self.allocate_organ(token_id, best.recipient, hospital=hospital, is_emergency=True)

    # Lifecycle

    async def _live_proposal(self, organ: Organ) -> MatchProposal | None:
        proposals = await self.registry.list_proposals(organ_id=organ.token_id)
        for proposal in reversed(proposals):
            if proposal.is_live and proposal.recipient == organ.assigned_recipient:
                return proposal
        return None

    async def mark_transplanted(self, token_id: int) -> Organ:
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_organ(token_id)
            if organ.status != OrganStatus.MATCHED:
                raise InvalidState(f"Organ {token_id} must be Matched before transplant, is {organ.status.value}")
            recipient = organ.assigned_recipient
            async with self.locks.hold(recipient_key(recipient)):
                transplanted = organ.model_copy(update={"status": OrganStatus.TRANSPLANTED})
                await self.registry.save_organ(transplanted)
                proposal = await self._live_proposal(organ)
                if proposal is not None and proposal.status != ProposalStatus.CONFIRMED:
                    await self.registry.save_proposal(proposal.model_copy(update={"status": ProposalStatus.CONFIRMED}))
                await self._set_medical_status(recipient, MedicalStatus.TRANSPLANTED)
        logger.info("Organ {} transplanted into {}", token_id, recipient)
        await self._emit("organ_transplanted", {"organ_id": token_id, "recipient": recipient})
        return transplanted

    async def _retire(self, token_id: int, status: OrganStatus, proposal_status: ProposalStatus) -> Organ:
        async with self.locks.hold(organ_key(token_id)):
            organ = await self._require_organ(token_id)
            if organ.status not in (OrganStatus.AVAILABLE, OrganStatus.MATCHED):
                raise InvalidState(f"Organ {token_id} is {organ.status.value}; cannot mark {status.value}")
            proposal = await self._live_proposal(organ) if organ.status == OrganStatus.MATCHED else None
            retired = organ.model_copy(update={"status": status, "assigned_recipient": None, "assigned_hospital": None})
            await self.registry.save_organ(retired)
            if proposal is not None:
                await self.registry.save_proposal(proposal.model_copy(update={"status": proposal_status}))
            if organ.status == OrganStatus.MATCHED:
                await self._release_capacity(organ.assigned_hospital, organ.organ_type)
        # The recipient's waiting-list entry stays inactive; a new entry needs manual review.
        logger.info("Organ {} marked {} (was {})", token_id, status.value, organ.status.value)
        await self._emit(
            f"organ_{status.value.lower()}",
            {"organ_id": token_id, "previous_recipient": organ.assigned_recipient},
        )
        return retired

    async def mark_expired(self, token_id: int) -> Organ:
        return await self._retire(token_id, OrganStatus.EXPIRED, ProposalStatus.EXPIRED)

    async def mark_rejected(self, token_id: int) -> Organ:
        return await self._retire(token_id, OrganStatus.REJECTED, ProposalStatus.REJECTED)

    # Proposals

    async def _require_proposal(self, proposal_id: int) -> MatchProposal:
        proposal = await self.registry.get_proposal(proposal_id)
        if proposal is None:
            raise NotFound(f"Match proposal {proposal_id} does not exist")
        return proposal

    async def get_proposal(self, proposal_id: int) -> MatchProposal:
        return await self._require_proposal(proposal_id)

    async def confirm_proposal(self, proposal_id: int) -> MatchProposal:
        proposal = await self._require_proposal(proposal_id)
        async with self.locks.hold(organ_key(proposal.organ_id)):
            proposal = await self._require_proposal(proposal_id)
            organ = await self._require_organ(proposal.organ_id)
            if proposal.status not in (ProposalStatus.PENDING, ProposalStatus.MATCHED):
                raise InvalidState(f"Proposal {proposal_id} is {proposal.status.value}")
            if organ.status != OrganStatus.MATCHED or organ.assigned_recipient != proposal.recipient:
                raise InvalidState(f"Organ {organ.token_id} is no longer held by proposal {proposal_id}")
            confirmed = proposal.model_copy(update={"status": ProposalStatus.CONFIRMED})
            await self.registry.save_proposal(confirmed)
        await self._emit("proposal_confirmed", confirmed.model_dump(mode="json"))
        return confirmed

    async def cancel_proposal(self, proposal_id: int, status: ProposalStatus = ProposalStatus.REJECTED) -> MatchProposal:
        if status not in (ProposalStatus.REJECTED, ProposalStatus.EXPIRED):
            raise InvalidInput("A proposal can only be cancelled as Rejected or Expired")
        proposal = await self._require_proposal(proposal_id)
        async with self.locks.hold(organ_key(proposal.organ_id)):
            proposal = await self._require_proposal(proposal_id)
            organ = await self._require_organ(proposal.organ_id)
            if not proposal.is_live:
                raise InvalidState(f"Proposal {proposal_id} is already {proposal.status.value}")
            if organ.status != OrganStatus.MATCHED or organ.assigned_recipient != proposal.recipient:
                raise InvalidState(f"Organ {organ.token_id} is {organ.status.value}; proposal cannot be cancelled")
            cancelled = proposal.model_copy(update={"status": status})
            released = organ.model_copy(
                update={"status": OrganStatus.AVAILABLE, "assigned_recipient": None, "assigned_hospital": None}
            )
            await self.registry.save_proposal(cancelled)
            await self.registry.save_organ(released)
            await self._release_capacity(organ.assigned_hospital, organ.organ_type)
        logger.info("Proposal {} {}; organ {} back to Available for review", proposal_id, status.value, organ.token_id)
        await self._emit("proposal_cancelled", cancelled.model_dump(mode="json"))
        return cancelled

    async def get_organ_match_proposals(self, token_id: int) -> List[MatchProposal]:
        await self.get_organ(token_id)
        return await self.registry.list_proposals(organ_id=token_id)

    async def get_recipient_matches(self, recipient: str) -> List[int]:
        await self._require_recipient(recipient)
        proposals = await self.registry.list_proposals(recipient=recipient)
        return [proposal.organ_id for proposal in proposals]

    # Sweeps driven by the caller

    async def expire_overdue_organs(self, now: datetime | None = None) -> List[int]:
        now = now or self.clock()
        expired: List[int] = []
        for status in (OrganStatus.AVAILABLE, OrganStatus.MATCHED):
            for organ in await self.registry.list_organs(status=status):
                if organ.expiry_timestamp > now:
                    continue
                try:
                    await self.mark_expired(organ.token_id)
                except InvalidState:
                    logger.debug("Organ {} changed state during expiry sweep", organ.token_id)
                    continue
                expired.append(organ.token_id)
        return expired

    async def expire_stale_proposals(self, now: datetime | None = None) -> List[int]:
        now = now or self.clock()
        expired: List[int] = []
        for proposal in await self.registry.list_proposals(status=ProposalStatus.MATCHED):
            if proposal.proposal_timestamp + self.proposal_timeout > now:
                continue
            try:
                await self.cancel_proposal(proposal.proposal_id, ProposalStatus.EXPIRED)
            except InvalidState:
                logger.debug("Proposal {} changed state during timeout sweep", proposal.proposal_id)
                continue
            expired.append(proposal.proposal_id)
        return expired

    # Scoring configuration

    def get_scoring_weight(self, parameter: str) -> int:
        return self.weights.get(parameter)

    async def update_scoring_weight(self, parameter: str, weight: int) -> Dict[str, int]:
        self.weights.update(parameter, weight)
        logger.info("Scoring weight {} set to {}", parameter, weight)
        await self._emit("scoring_weight_updated", {"parameter": parameter, "weight": weight})
        return self.weights.as_dict()
