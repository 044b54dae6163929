from __future__ import annotations

from typing import Dict, List

from ..errors import DuplicateEntry, NotFound
from ..models.common import OrganType
from ..models.donor import Donor, DonorStatus
from ..models.hospital import Hospital
from ..models.match import MatchProposal, ProposalStatus
from ..models.oracle import DeathVerificationRequest
from ..models.organ import Organ, OrganStatus
from ..models.recipient import MedicalStatus, Recipient
from ..models.waitlist import WaitingListEntry
from .base import Registry


class InMemoryRegistry(Registry):
    """Dictionary-backed registry. Records are copied on the way in and out."""

    def __init__(self) -> None:
        self.donors: Dict[str, Donor] = {}
        self.recipients: Dict[str, Recipient] = {}
        self.hospitals: Dict[str, Hospital] = {}
        self.organs: Dict[int, Organ] = {}
        self.proposals: Dict[int, MatchProposal] = {}
        self.waitlist_entries: Dict[int, WaitingListEntry] = {}
        self.verification_requests: Dict[int, DeathVerificationRequest] = {}

    async def get_donor(self, address: str) -> Donor | None:
        donor = self.donors.get(address)
        return donor.model_copy(deep=True) if donor else None

    async def save_donor(self, donor: Donor) -> None:
        self.donors[donor.address] = donor.model_copy(deep=True)

    async def set_donor_status(self, address: str, status: DonorStatus) -> Donor:
        if address not in self.donors:
            raise NotFound(f"Donor {address} not registered")
        self.donors[address] = self.donors[address].model_copy(update={"status": status})
        return self.donors[address].model_copy(deep=True)

    async def get_recipient(self, address: str) -> Recipient | None:
        recipient = self.recipients.get(address)
        return recipient.model_copy(deep=True) if recipient else None

    async def save_recipient(self, recipient: Recipient) -> None:
        self.recipients[recipient.address] = recipient.model_copy(deep=True)

    async def set_recipient_status(self, address: str, status: MedicalStatus) -> Recipient:
        if address not in self.recipients:
            raise NotFound(f"Recipient {address} not registered")
        self.recipients[address] = self.recipients[address].model_copy(update={"medical_status": status})
        return self.recipients[address].model_copy(deep=True)

    async def get_hospital(self, address: str) -> Hospital | None:
        hospital = self.hospitals.get(address)
        return hospital.model_copy(deep=True) if hospital else None

    async def save_hospital(self, hospital: Hospital) -> None:
        self.hospitals[hospital.address] = hospital.model_copy(deep=True)

    async def get_organ(self, token_id: int) -> Organ | None:
        organ = self.organs.get(token_id)
        return organ.model_copy(deep=True) if organ else None

    async def insert_organ(self, organ: Organ) -> None:
        if organ.token_id in self.organs:
            raise DuplicateEntry(f"Organ {organ.token_id} already exists")
        self.organs[organ.token_id] = organ.model_copy(deep=True)

    async def save_organ(self, organ: Organ) -> None:
        self.organs[organ.token_id] = organ.model_copy(deep=True)

    async def set_organ_status(self, token_id: int, status: OrganStatus) -> Organ:
        if token_id not in self.organs:
            raise NotFound(f"Organ {token_id} does not exist")
        self.organs[token_id] = self.organs[token_id].model_copy(update={"status": status})
        return self.organs[token_id].model_copy(deep=True)

    async def list_organs(
        self,
        organ_type: OrganType | None = None,
        status: OrganStatus | None = None,
        blood_type: str | None = None,
    ) -> List[Organ]:
        organs = []
        for organ in sorted(self.organs.values(), key=lambda item: item.token_id):
            if organ_type is not None and organ.organ_type != organ_type:
                continue
            if status is not None and organ.status != status:
                continue
            if blood_type is not None and organ.blood_type != blood_type:
                continue
            organs.append(organ.model_copy(deep=True))
        return organs

    async def max_organ_id(self) -> int:
        return max(self.organs, default=0)

    async def get_proposal(self, proposal_id: int) -> MatchProposal | None:
        proposal = self.proposals.get(proposal_id)
        return proposal.model_copy(deep=True) if proposal else None

    async def insert_proposal(self, proposal: MatchProposal) -> None:
        if proposal.proposal_id in self.proposals:
            raise DuplicateEntry(f"Match proposal {proposal.proposal_id} already exists")
        self.proposals[proposal.proposal_id] = proposal.model_copy(deep=True)

    async def save_proposal(self, proposal: MatchProposal) -> None:
        self.proposals[proposal.proposal_id] = proposal.model_copy(deep=True)

    async def list_proposals(
        self,
        organ_id: int | None = None,
        recipient: str | None = None,
        status: ProposalStatus | None = None,
    ) -> List[MatchProposal]:
        proposals = []
        for proposal in sorted(self.proposals.values(), key=lambda item: item.proposal_id):
            if organ_id is not None and proposal.organ_id != organ_id:
                continue
            if recipient is not None and proposal.recipient != recipient:
                continue
            if status is not None and proposal.status != status:
                continue
            proposals.append(proposal.model_copy(deep=True))
        return proposals

    async def max_proposal_id(self) -> int:
        return max(self.proposals, default=0)

    async def save_waitlist_entry(self, entry: WaitingListEntry) -> None:
        self.waitlist_entries[entry.sequence] = entry.model_copy(deep=True)

    async def list_waitlist_entries(self) -> List[WaitingListEntry]:
        return [self.waitlist_entries[key].model_copy(deep=True) for key in sorted(self.waitlist_entries)]

    async def save_verification_request(self, request: DeathVerificationRequest) -> None:
        self.verification_requests[request.request_id] = request.model_copy(deep=True)

    async def list_verification_requests(self) -> List[DeathVerificationRequest]:
        return [self.verification_requests[key].model_copy(deep=True) for key in sorted(self.verification_requests)]
