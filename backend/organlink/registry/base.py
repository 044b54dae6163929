"""Record store contract consumed by the allocation core.

Accessors are simple key-value operations with last-write-wins semantics per
key. Getters return ``None`` for absent records; status setters raise
:class:`~organlink.errors.NotFound`. The ``insert_*`` methods create records
and raise :class:`~organlink.errors.DuplicateEntry` instead of overwriting.

Besides the registry records the store keeps the waiting-list entries (keyed
by sequence) and death verification requests (keyed by request id) so both
survive a restart.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..models.common import OrganType
from ..models.donor import Donor, DonorStatus
from ..models.hospital import Hospital
from ..models.match import MatchProposal, ProposalStatus
from ..models.oracle import DeathVerificationRequest
from ..models.organ import Organ, OrganStatus
from ..models.recipient import MedicalStatus, Recipient
from ..models.waitlist import WaitingListEntry


class Registry(ABC):
    @abstractmethod
    async def get_donor(self, address: str) -> Donor | None: ...

    @abstractmethod
    async def save_donor(self, donor: Donor) -> None: ...

    @abstractmethod
    async def set_donor_status(self, address: str, status: DonorStatus) -> Donor: ...

    @abstractmethod
    async def get_recipient(self, address: str) -> Recipient | None: ...

    @abstractmethod
    async def save_recipient(self, recipient: Recipient) -> None: ...

    @abstractmethod
    async def set_recipient_status(self, address: str, status: MedicalStatus) -> Recipient: ...

    @abstractmethod
    async def get_hospital(self, address: str) -> Hospital | None: ...

    @abstractmethod
    async def save_hospital(self, hospital: Hospital) -> None: ...

    @abstractmethod
    async def get_organ(self, token_id: int) -> Organ | None: ...

    @abstractmethod
    async def insert_organ(self, organ: Organ) -> None: ...

    @abstractmethod
    async def save_organ(self, organ: Organ) -> None: ...

    @abstractmethod
    async def set_organ_status(self, token_id: int, status: OrganStatus) -> Organ: ...

    @abstractmethod
    async def list_organs(
        self,
        organ_type: OrganType | None = None,
        status: OrganStatus | None = None,
        blood_type: str | None = None,
    ) -> List[Organ]: ...

    @abstractmethod
    async def max_organ_id(self) -> int:
        """Highest stored token id, 0 when there are no organs."""

    @abstractmethod
    async def get_proposal(self, proposal_id: int) -> MatchProposal | None: ...

    @abstractmethod
    async def insert_proposal(self, proposal: MatchProposal) -> None: ...

    @abstractmethod
    async def save_proposal(self, proposal: MatchProposal) -> None: ...

    @abstractmethod
    async def list_proposals(
        self,
        organ_id: int | None = None,
        recipient: str | None = None,
        status: ProposalStatus | None = None,
    ) -> List[MatchProposal]: ...

    @abstractmethod
    async def max_proposal_id(self) -> int: ...

    @abstractmethod
    async def save_waitlist_entry(self, entry: WaitingListEntry) -> None: ...

    @abstractmethod
    async def list_waitlist_entries(self) -> List[WaitingListEntry]: ...

    @abstractmethod
    async def save_verification_request(self, request: DeathVerificationRequest) -> None: ...

    @abstractmethod
    async def list_verification_requests(self) -> List[DeathVerificationRequest]: ...
