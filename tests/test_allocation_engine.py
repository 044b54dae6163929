from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import make_donor, make_recipient, register_deceased_donor
from organlink.engine.allocation import AllocationEngine
from organlink.errors import (
    DuplicateEntry,
    InvalidInput,
    InvalidState,
    NoCandidate,
    NotEligible,
    NotFound,
    RegistryUnavailable,
)
from organlink.models.common import OrganType
from organlink.models.donor import DonorStatus
from organlink.models.match import ProposalStatus
from organlink.models.organ import OrganStatus
from organlink.models.recipient import MedicalStatus
from organlink.models.waitlist import Priority
from organlink.registry.memory import InMemoryRegistry
from organlink.waitlist.manager import WaitingListManager


async def liver_scenario(engine: AllocationEngine, clock):
    """R1 (O-) and R2 (A+) wait for a Liver in region X; an O- Liver arrives."""
    await engine.registry.save_recipient(make_recipient("R1", "O-"))
    await engine.registry.save_recipient(make_recipient("R2", "A+"))
    await engine.add_to_waiting_list("R1", OrganType.LIVER, 8, "X", Priority.MEDIUM)
    clock.advance(minutes=10)
    await engine.add_to_waiting_list("R2", OrganType.LIVER, 8, "X", Priority.MEDIUM)
    await register_deceased_donor(engine, "D1", "O-")
    return await engine.register_organ("D1", OrganType.LIVER, "X", urgency_level=5)


async def test_liver_scenario(engine, clock, waitlist):
    organ = await liver_scenario(engine, clock)

    assert await engine.find_compatible_recipients(organ.token_id) == {"R1", "R2"}
    assert [entry.recipient for entry in waitlist.prioritize(OrganType.LIVER, "X")] == ["R1", "R2"]

    proposal = await engine.allocate_organ(organ.token_id, "R1")

    stored = await engine.get_organ(organ.token_id)
    assert stored.status == OrganStatus.MATCHED
    assert stored.assigned_recipient == "R1"
    assert proposal.status == ProposalStatus.MATCHED
    assert waitlist.get_active("R1", OrganType.LIVER) is None
    assert waitlist.get_active("R2", OrganType.LIVER) is not None
    assert await engine.get_recipient_matches("R1") == [organ.token_id]


async def test_allocating_matched_organ_is_not_eligible(engine, clock):
    organ = await liver_scenario(engine, clock)
    await engine.allocate_organ(organ.token_id, "R1")

    with pytest.raises(NotEligible):
        await engine.allocate_organ(organ.token_id, "R2")


async def test_concurrent_allocation_produces_one_proposal(engine, clock):
    organ = await liver_scenario(engine, clock)

    results = await asyncio.gather(
        engine.allocate_organ(organ.token_id, "R1"),
        engine.allocate_organ(organ.token_id, "R2"),
        return_exceptions=True,
    )

    failures = [result for result in results if isinstance(result, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], NotEligible)
    assert len(await engine.get_organ_match_proposals(organ.token_id)) == 1


async def test_allocation_requires_active_entry_and_compatible_blood(engine, clock):
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_recipient(make_recipient("R3", "O+"))

    with pytest.raises(NotEligible):
        await engine.allocate_organ(organ.token_id, "R3")
    with pytest.raises(NotFound):
        await engine.allocate_organ(organ.token_id, "ghost")
    with pytest.raises(NotFound):
        await engine.allocate_organ(999, "R1")


async def test_incompatible_blood_cannot_be_allocated(engine, clock):
    await engine.registry.save_recipient(make_recipient("R1", "O-"))
    await engine.add_to_waiting_list("R1", OrganType.KIDNEY, 6, "X")
    await register_deceased_donor(engine, "D2", "A+")
    organ = await engine.register_organ("D2", OrganType.KIDNEY, "X")

    with pytest.raises(NotEligible):
        await engine.allocate_organ(organ.token_id, "R1")
    assert (await engine.get_organ(organ.token_id)).status == OrganStatus.AVAILABLE


async def test_hospital_must_be_verified_with_capacity(engine, clock, verified_hospital):
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_hospital(verified_hospital.model_copy(update={"address": "H2", "verified": False}))
    await engine.registry.save_hospital(verified_hospital)

    with pytest.raises(NotFound):
        await engine.allocate_organ(organ.token_id, "R1", hospital="H404")
    with pytest.raises(NotEligible):
        await engine.allocate_organ(organ.token_id, "R1", hospital="H2")

    proposal = await engine.allocate_organ(organ.token_id, "R1", hospital="H1")
    assert proposal.proposing_hospital == "H1"
    assert (await engine.get_organ(organ.token_id)).assigned_hospital == "H1"
    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 1


async def test_allocate_best_match_prefers_longest_waiting_on_tie(engine, clock):
    organ = await liver_scenario(engine, clock)

    ranked = await engine.rank_candidates(organ.token_id)
    assert [candidate.recipient for candidate in ranked] == ["R1", "R2"]
    assert ranked[0].score.total_score == ranked[1].score.total_score

    proposal = await engine.allocate_best_match(organ.token_id)
    assert proposal.recipient == "R1"


async def test_allocate_best_match_without_candidates(engine):
    await register_deceased_donor(engine, "D1", "AB+")
    organ = await engine.register_organ("D1", OrganType.HEART, "X")

    with pytest.raises(NoCandidate):
        await engine.allocate_best_match(organ.token_id)


async def test_mark_expired_keeps_entry_inactive(engine, clock, waitlist):
    organ = await liver_scenario(engine, clock)
    proposal = await engine.allocate_organ(organ.token_id, "R1")

    expired = await engine.mark_expired(organ.token_id)

    assert expired.status == OrganStatus.EXPIRED
    assert expired.assigned_recipient is None
    assert (await engine.registry.get_proposal(proposal.proposal_id)).status == ProposalStatus.EXPIRED
    assert waitlist.get_active("R1", OrganType.LIVER) is None
    with pytest.raises(InvalidState):
        await engine.mark_expired(organ.token_id)


async def test_mark_transplanted(engine, clock, waitlist):
    organ = await liver_scenario(engine, clock)
    with pytest.raises(InvalidState):
        await engine.mark_transplanted(organ.token_id)

    await engine.add_to_waiting_list("R1", OrganType.KIDNEY, 4, "X")
    proposal = await engine.allocate_organ(organ.token_id, "R1")
    transplanted = await engine.mark_transplanted(organ.token_id)

    assert transplanted.status == OrganStatus.TRANSPLANTED
    assert transplanted.assigned_recipient == "R1"
    assert (await engine.registry.get_proposal(proposal.proposal_id)).status == ProposalStatus.CONFIRMED
    assert (await engine.registry.get_recipient("R1")).medical_status == MedicalStatus.TRANSPLANTED
    assert waitlist.get_active("R1", OrganType.KIDNEY) is None


async def test_cancel_proposal_returns_organ_for_review(engine, clock, waitlist):
    organ = await liver_scenario(engine, clock)
    proposal = await engine.allocate_organ(organ.token_id, "R1")

    cancelled = await engine.cancel_proposal(proposal.proposal_id, ProposalStatus.REJECTED)

    assert cancelled.status == ProposalStatus.REJECTED
    released = await engine.get_organ(organ.token_id)
    assert released.status == OrganStatus.AVAILABLE
    assert released.assigned_recipient is None
    assert waitlist.get_active("R1", OrganType.LIVER) is None
    with pytest.raises(InvalidState):
        await engine.cancel_proposal(proposal.proposal_id)
    with pytest.raises(InvalidInput):
        await engine.cancel_proposal(proposal.proposal_id, ProposalStatus.CONFIRMED)

    second = await engine.allocate_organ(organ.token_id, "R2")
    assert second.proposal_id != proposal.proposal_id


async def test_confirm_proposal(engine, clock):
    organ = await liver_scenario(engine, clock)
    proposal = await engine.allocate_organ(organ.token_id, "R1")

    confirmed = await engine.confirm_proposal(proposal.proposal_id)

    assert confirmed.status == ProposalStatus.CONFIRMED
    with pytest.raises(InvalidState):
        await engine.confirm_proposal(proposal.proposal_id)
    with pytest.raises(NotFound):
        await engine.confirm_proposal(404)


async def test_emergency_match_crosses_regions(engine, clock):
    await engine.registry.save_recipient(make_recipient("near", "B+", region="Y"))
    await engine.registry.save_recipient(make_recipient("far", "B+", region="Z"))
    await engine.add_to_waiting_list("far", OrganType.HEART, 10, "Z", Priority.EMERGENCY)
    await engine.add_to_waiting_list("near", OrganType.HEART, 9, "Y", Priority.CRITICAL)
    await register_deceased_donor(engine, "D1", "O-")
    organ = await engine.register_organ("D1", OrganType.HEART, "X", is_emergency=True, urgency_level=9)

    with pytest.raises(NoCandidate):
        await engine.trigger_emergency_match(organ.token_id, 100)

    proposal = await engine.trigger_emergency_match(organ.token_id, 500)

    assert proposal.recipient == "near"
    assert proposal.is_emergency is True


async def test_emergency_match_requires_emergency_organ(engine, clock):
    organ = await liver_scenario(engine, clock)

    with pytest.raises(NotEligible):
        await engine.trigger_emergency_match(organ.token_id, 1000)
    with pytest.raises(InvalidInput):
        await engine.trigger_emergency_match(organ.token_id, -1)

    await engine.set_emergency_status(organ.token_id, False, 10)
    proposal = await engine.trigger_emergency_match(organ.token_id, 0)
    assert proposal.recipient == "R1"


async def test_failed_write_rolls_back_allocation(clock, waitlist, gateway, verified_hospital):
    class FlakyRegistry(InMemoryRegistry):
        async def insert_proposal(self, proposal):
            raise RegistryUnavailable("proposal store offline")

    engine = AllocationEngine(FlakyRegistry(), waitlist, gateway, clock=clock)
    gateway.subscribe(engine.handle_verification)
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_hospital(verified_hospital)

    with pytest.raises(RegistryUnavailable):
        await engine.allocate_organ(organ.token_id, "R1", hospital="H1")

    restored = await engine.get_organ(organ.token_id)
    assert restored.status == OrganStatus.AVAILABLE
    assert restored.assigned_recipient is None
    entry = waitlist.get_active("R1", OrganType.LIVER)
    assert entry is not None
    assert engine.registry.waitlist_entries[entry.sequence].is_active is True
    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 2
    assert await engine.registry.list_proposals() == []


async def test_register_organ_gated_on_attested_death(engine, gateway):
    with pytest.raises(NotFound):
        await engine.register_organ("nobody", OrganType.LIVER, "X")

    await engine.registry.save_donor(make_donor("D1", "B+"))
    with pytest.raises(NotEligible):
        await engine.register_organ("D1", OrganType.LIVER, "X")

    request_id = await engine.request_death_verification("D1")
    assert await engine.death_verification_state("D1") == "pending"
    with pytest.raises(NotEligible):
        await engine.register_organ("D1", OrganType.LIVER, "X")

    await gateway.fulfill(request_id, False)
    assert await engine.death_verification_state("D1") == "not_deceased"
    with pytest.raises(NotEligible):
        await engine.register_organ("D1", OrganType.LIVER, "X")

    second = await engine.request_death_verification("D1")
    await gateway.fulfill(second, True, "bafy-cert")
    organ = await engine.register_organ("D1", OrganType.LIVER, "X")

    assert organ.blood_type == "B+"
    assert organ.expiry_timestamp - organ.donation_timestamp == timedelta(hours=12)
    assert (await engine.registry.get_donor("D1")).status == DonorStatus.DECEASED


async def test_duplicate_verification_notice_handled_once(engine, gateway, events):
    await register_deceased_donor(engine, "D1", "O+")
    request = await gateway.get_request(1)

    await engine.handle_verification(request)
    await engine.handle_verification(request)

    assert [event.type for event in events].count("donor_deceased") == 1


async def test_terminal_medical_status_deactivates_entries(engine, waitlist):
    await engine.registry.save_recipient(make_recipient("R1", "O-"))
    await engine.add_to_waiting_list("R1", OrganType.LIVER, 5, "X")
    await engine.add_to_waiting_list("R1", OrganType.KIDNEY, 5, "X")

    await engine.update_recipient_medical_status("R1", MedicalStatus.REJECTED)

    assert waitlist.get_active("R1", OrganType.LIVER) is None
    assert waitlist.get_active("R1", OrganType.KIDNEY) is None
    with pytest.raises(NotEligible):
        await engine.add_to_waiting_list("R1", OrganType.HEART, 5, "X")


async def test_sweeps_expire_overdue_organs_and_stale_proposals(engine, clock):
    organ = await liver_scenario(engine, clock)
    proposal = await engine.allocate_organ(organ.token_id, "R1")

    clock.advance(minutes=121)
    assert await engine.expire_stale_proposals() == [proposal.proposal_id]
    assert (await engine.get_organ(organ.token_id)).status == OrganStatus.AVAILABLE

    clock.advance(hours=12)
    assert await engine.expire_overdue_organs() == [organ.token_id]
    assert (await engine.get_organ(organ.token_id)).status == OrganStatus.EXPIRED


async def test_scoring_weight_updates_feed_new_scores(engine, clock, events):
    organ = await liver_scenario(engine, clock)
    before = await engine.calculate_match_score(organ.token_id, "R1")

    await engine.update_scoring_weight("medicalWeight", 0)
    after = await engine.calculate_match_score(organ.token_id, "R1")

    assert before.medical_score == 5
    assert after.medical_score == 0
    assert after.total_score == before.total_score - 5
    assert engine.get_scoring_weight("medicalWeight") == 0
    assert events[-1].type == "scoring_weight_updated"


async def test_mark_rejected_retires_available_organ(engine, clock, events):
    organ = await liver_scenario(engine, clock)

    rejected = await engine.mark_rejected(organ.token_id)

    assert rejected.status == OrganStatus.REJECTED
    assert await engine.get_organ_match_proposals(organ.token_id) == []
    assert events[-1].type == "organ_rejected"
    with pytest.raises(NotEligible):
        await engine.allocate_organ(organ.token_id, "R1")


class YieldingRegistry(InMemoryRegistry):
    """Hands control to other tasks while a hospital lookup is in flight."""

    async def get_hospital(self, address):
        await asyncio.sleep(0)
        return await super().get_hospital(address)


def engine_on(registry, waitlist, gateway, clock) -> AllocationEngine:
    engine = AllocationEngine(registry, waitlist, gateway, clock=clock)
    gateway.subscribe(engine.handle_verification)
    return engine


async def test_withdrawal_waits_for_allocation_in_flight(clock, waitlist, gateway, verified_hospital):
    engine = engine_on(YieldingRegistry(), waitlist, gateway, clock)
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_hospital(verified_hospital)

    proposal, withdrawn = await asyncio.gather(
        engine.allocate_organ(organ.token_id, "R1", hospital="H1"),
        engine.withdraw_from_waiting_list("R1", OrganType.LIVER),
    )

    # the allocation already consumed the entry, so there is nothing left to withdraw
    assert proposal.recipient == "R1"
    assert withdrawn is None
    assert waitlist.entries_for("R1")[0].is_active is False


async def test_entry_lost_during_hospital_check_blocks_allocation(clock, waitlist, gateway, verified_hospital):
    engine = engine_on(YieldingRegistry(), waitlist, gateway, clock)
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_hospital(verified_hospital)

    async def drop_entry():
        waitlist.deactivate("R1", OrganType.LIVER)

    results = await asyncio.gather(
        engine.allocate_organ(organ.token_id, "R1", hospital="H1"),
        drop_entry(),
        return_exceptions=True,
    )

    assert isinstance(results[0], NotEligible)
    stored = await engine.get_organ(organ.token_id)
    assert stored.status == OrganStatus.AVAILABLE
    assert stored.assigned_recipient is None
    assert await engine.get_organ_match_proposals(organ.token_id) == []
    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 2


async def test_medical_status_change_waits_for_allocation_in_flight(clock, waitlist, gateway, verified_hospital):
    engine = engine_on(YieldingRegistry(), waitlist, gateway, clock)
    organ = await liver_scenario(engine, clock)
    await engine.registry.save_hospital(verified_hospital)

    proposal, updated = await asyncio.gather(
        engine.allocate_organ(organ.token_id, "R1", hospital="H1"),
        engine.update_recipient_medical_status("R1", MedicalStatus.REJECTED),
    )

    assert proposal.status == ProposalStatus.MATCHED
    assert updated.medical_status == MedicalStatus.REJECTED
    assert waitlist.get_active("R1", OrganType.LIVER) is None


async def test_withdraw_and_reprioritize_through_engine(engine, clock, waitlist, events):
    await liver_scenario(engine, clock)

    updated = await engine.update_waiting_list_priority("R2", OrganType.LIVER, 10, Priority.EMERGENCY, "X")
    assert [entry.recipient for entry in engine.prioritized_waiting_list(OrganType.LIVER, "X")] == ["R2", "R1"]
    assert engine.registry.waitlist_entries[updated.sequence].priority == Priority.EMERGENCY

    withdrawn = await engine.withdraw_from_waiting_list("R1", OrganType.LIVER)
    assert withdrawn.is_active is False
    assert engine.registry.waitlist_entries[withdrawn.sequence].is_active is False
    assert await engine.withdraw_from_waiting_list("R1", OrganType.LIVER) is None
    assert [entry.recipient for entry in engine.get_waiting_list(OrganType.LIVER, "X")] == ["R2"]
    assert len(engine.get_waiting_list(OrganType.LIVER, "X", include_inactive=True)) == 2
    assert "waitlist_withdrawn" in [event.type for event in events]
    with pytest.raises(NotFound):
        await engine.withdraw_from_waiting_list("ghost", OrganType.LIVER)


async def test_failed_entry_write_leaves_queue_unchanged(clock, waitlist, gateway):
    class ReadOnlyQueueRegistry(InMemoryRegistry):
        offline = False

        async def save_waitlist_entry(self, entry):
            if self.offline:
                raise RegistryUnavailable("waiting list store offline")
            await super().save_waitlist_entry(entry)

    engine = engine_on(ReadOnlyQueueRegistry(), waitlist, gateway, clock)
    await liver_scenario(engine, clock)
    await engine.registry.save_recipient(make_recipient("R3", "B+"))
    engine.registry.offline = True

    with pytest.raises(RegistryUnavailable):
        await engine.add_to_waiting_list("R3", OrganType.LIVER, 5, "X")
    with pytest.raises(RegistryUnavailable):
        await engine.update_waiting_list_priority("R1", OrganType.LIVER, 2, Priority.LOW, "Y")
    with pytest.raises(RegistryUnavailable):
        await engine.withdraw_from_waiting_list("R2", OrganType.LIVER)

    assert waitlist.entries_for("R3") == []
    entry = waitlist.get_active("R1", OrganType.LIVER)
    assert (entry.urgency_level, entry.priority, entry.region) == (8, Priority.MEDIUM, "X")
    assert waitlist.get_active("R2", OrganType.LIVER) is not None


async def test_engines_sharing_a_store_never_reuse_ids(registry, clock, gateway):
    first = engine_on(registry, WaitingListManager(clock=clock), gateway, clock)
    organ = await liver_scenario(first, clock)
    proposal = await first.allocate_organ(organ.token_id, "R1")

    # a second process over the same store starts its own sequences at 1
    second = engine_on(registry, first.waitlist, gateway, clock)
    kidney = await second.register_organ("D1", OrganType.KIDNEY, "X")
    liver = await second.register_organ("D1", OrganType.LIVER, "X")
    later = await second.allocate_organ(liver.token_id, "R2")

    assert kidney.token_id == 2 and liver.token_id == 3
    assert later.proposal_id == 2
    assert (await registry.get_organ(organ.token_id)).organ_type == OrganType.LIVER
    assert (await registry.get_proposal(proposal.proposal_id)).recipient == "R1"


async def test_stored_records_are_never_overwritten_on_create(registry, engine, clock):
    organ = await liver_scenario(engine, clock)

    with pytest.raises(DuplicateEntry):
        await registry.insert_organ(organ.model_copy(update={"organ_type": OrganType.KIDNEY}))
    assert (await registry.get_organ(organ.token_id)).organ_type == OrganType.LIVER


async def test_allocation_reserves_hospital_capacity(engine, clock, verified_hospital):
    organ = await liver_scenario(engine, clock)
    second = await engine.register_organ("D1", OrganType.LIVER, "X")
    await engine.registry.save_hospital(verified_hospital.with_capacity(OrganType.LIVER, 1))

    results = await asyncio.gather(
        engine.allocate_organ(organ.token_id, "R1", hospital="H1"),
        engine.allocate_organ(second.token_id, "R2", hospital="H1"),
        return_exceptions=True,
    )

    assert results[0].proposing_hospital == "H1"
    assert isinstance(results[1], NotEligible)
    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 0

    await engine.cancel_proposal(results[0].proposal_id)
    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 1
    retry = await engine.allocate_organ(second.token_id, "R2", hospital="H1")
    assert retry.proposing_hospital == "H1"


async def test_retiring_matched_organ_releases_capacity_but_transplant_keeps_it(engine, clock, verified_hospital):
    organ = await liver_scenario(engine, clock)
    second = await engine.register_organ("D1", OrganType.LIVER, "X")
    await engine.registry.save_hospital(verified_hospital)
    await engine.allocate_organ(organ.token_id, "R1", hospital="H1")
    await engine.allocate_organ(second.token_id, "R2", hospital="H1")

    await engine.mark_expired(organ.token_id)
    await engine.mark_transplanted(second.token_id)

    assert (await engine.registry.get_hospital("H1")).capacity_for(OrganType.LIVER) == 1
