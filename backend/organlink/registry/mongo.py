from __future__ import annotations

from typing import Any, Dict, List, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..errors import DuplicateEntry, NotFound, RegistryUnavailable
from ..models.common import OrganType
from ..models.donor import Donor, DonorStatus
from ..models.hospital import Hospital
from ..models.match import MatchProposal, ProposalStatus
from ..models.oracle import DeathVerificationRequest
from ..models.organ import Organ, OrganStatus
from ..models.recipient import MedicalStatus, Recipient
from ..models.waitlist import WaitingListEntry
from ..utils.logging import log_db_error
from .base import Registry

ModelT = TypeVar("ModelT", bound=BaseModel)


def to_document(model: BaseModel, key: Any) -> Dict[str, Any]:
    return {"_id": key, **model.model_dump(mode="json")}


def from_document(model_cls: Type[ModelT], document: Dict[str, Any] | None) -> ModelT | None:
    if document is None:
        return None
    payload = {key: value for key, value in document.items() if key != "_id"}
    return model_cls(**payload)


class MongoRegistry(Registry):
    """Registry persisted in one MongoDB collection per entity, keyed by natural id."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self.donors: AsyncIOMotorCollection = database.get_collection("donors")
        self.recipients: AsyncIOMotorCollection = database.get_collection("recipients")
        self.hospitals: AsyncIOMotorCollection = database.get_collection("hospitals")
        self.organs: AsyncIOMotorCollection = database.get_collection("organs")
        self.proposals: AsyncIOMotorCollection = database.get_collection("match_proposals")
        self.waitlist_entries: AsyncIOMotorCollection = database.get_collection("waiting_list")
        self.verification_requests: AsyncIOMotorCollection = database.get_collection("verification_requests")

    async def _find_one(self, collection: AsyncIOMotorCollection, key: Any, context: str) -> Dict[str, Any] | None:
        try:
            return await collection.find_one({"_id": key})
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc

    async def _find(self, collection: AsyncIOMotorCollection, query: Dict[str, Any], context: str) -> List[Dict[str, Any]]:
        try:
            cursor = collection.find(query).sort("_id", 1)
            return [document async for document in cursor]
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc

    async def _replace(self, collection: AsyncIOMotorCollection, document: Dict[str, Any], context: str) -> None:
        try:
            await collection.replace_one({"_id": document["_id"]}, document, upsert=True)
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc

    async def _insert(self, collection: AsyncIOMotorCollection, document: Dict[str, Any], context: str) -> None:
        try:
            await collection.insert_one(document)
        except DuplicateKeyError as exc:
            raise DuplicateEntry(f"{context}: {document['_id']} already exists") from exc
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc

    async def _max_id(self, collection: AsyncIOMotorCollection, context: str) -> int:
        try:
            document = await collection.find_one({}, sort=[("_id", -1)])
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc
        return int(document["_id"]) if document else 0

    async def _set_field(
        self, collection: AsyncIOMotorCollection, key: Any, field: str, value: Any, context: str
    ) -> Dict[str, Any]:
        try:
            result = await collection.update_one({"_id": key}, {"$set": {field: value}})
        except PyMongoError as exc:
            log_db_error(context, exc)
            raise RegistryUnavailable(f"{context} failed: {exc}") from exc
        if result.matched_count == 0:
            raise NotFound(f"{context}: {key} not found")
        document = await self._find_one(collection, key, context)
        if document is None:
            raise NotFound(f"{context}: {key} not found")
        return document

    async def get_donor(self, address: str) -> Donor | None:
        return from_document(Donor, await self._find_one(self.donors, address, "get_donor"))

    async def save_donor(self, donor: Donor) -> None:
        await self._replace(self.donors, to_document(donor, donor.address), "save_donor")

    async def set_donor_status(self, address: str, status: DonorStatus) -> Donor:
        document = await self._set_field(self.donors, address, "status", status.value, "set_donor_status")
        return from_document(Donor, document)

    async def get_recipient(self, address: str) -> Recipient | None:
        return from_document(Recipient, await self._find_one(self.recipients, address, "get_recipient"))

    async def save_recipient(self, recipient: Recipient) -> None:
        await self._replace(self.recipients, to_document(recipient, recipient.address), "save_recipient")

    async def set_recipient_status(self, address: str, status: MedicalStatus) -> Recipient:
        document = await self._set_field(
            self.recipients, address, "medical_status", status.value, "set_recipient_status"
        )
        return from_document(Recipient, document)

    async def get_hospital(self, address: str) -> Hospital | None:
        return from_document(Hospital, await self._find_one(self.hospitals, address, "get_hospital"))

    async def save_hospital(self, hospital: Hospital) -> None:
        await self._replace(self.hospitals, to_document(hospital, hospital.address), "save_hospital")

    async def get_organ(self, token_id: int) -> Organ | None:
        return from_document(Organ, await self._find_one(self.organs, token_id, "get_organ"))

    async def insert_organ(self, organ: Organ) -> None:
        await self._insert(self.organs, to_document(organ, organ.token_id), "insert_organ")

    async def save_organ(self, organ: Organ) -> None:
        await self._replace(self.organs, to_document(organ, organ.token_id), "save_organ")

    async def set_organ_status(self, token_id: int, status: OrganStatus) -> Organ:
        document = await self._set_field(self.organs, token_id, "status", status.value, "set_organ_status")
        return from_document(Organ, document)

    async def list_organs(
        self,
        organ_type: OrganType | None = None,
        status: OrganStatus | None = None,
        blood_type: str | None = None,
    ) -> List[Organ]:
        query: Dict[str, Any] = {}
        if organ_type is not None:
            query["organ_type"] = organ_type.value
        if status is not None:
            query["status"] = status.value
        if blood_type is not None:
            query["blood_type"] = blood_type
        return [from_document(Organ, document) for document in await self._find(self.organs, query, "list_organs")]

    async def max_organ_id(self) -> int:
        return await self._max_id(self.organs, "max_organ_id")

    async def get_proposal(self, proposal_id: int) -> MatchProposal | None:
        return from_document(MatchProposal, await self._find_one(self.proposals, proposal_id, "get_proposal"))

    async def insert_proposal(self, proposal: MatchProposal) -> None:
        await self._insert(self.proposals, to_document(proposal, proposal.proposal_id), "insert_proposal")

    async def save_proposal(self, proposal: MatchProposal) -> None:
        await self._replace(self.proposals, to_document(proposal, proposal.proposal_id), "save_proposal")

    async def list_proposals(
        self,
        organ_id: int | None = None,
        recipient: str | None = None,
        status: ProposalStatus | None = None,
    ) -> List[MatchProposal]:
        query: Dict[str, Any] = {}
        if organ_id is not None:
            query["organ_id"] = organ_id
        if recipient is not None:
            query["recipient"] = recipient
        if status is not None:
            query["status"] = status.value
        documents = await self._find(self.proposals, query, "list_proposals")
        return [from_document(MatchProposal, document) for document in documents]

    async def max_proposal_id(self) -> int:
        return await self._max_id(self.proposals, "max_proposal_id")

    async def save_waitlist_entry(self, entry: WaitingListEntry) -> None:
        await self._replace(self.waitlist_entries, to_document(entry, entry.sequence), "save_waitlist_entry")

    async def list_waitlist_entries(self) -> List[WaitingListEntry]:
        documents = await self._find(self.waitlist_entries, {}, "list_waitlist_entries")
        return [from_document(WaitingListEntry, document) for document in documents]

    async def save_verification_request(self, request: DeathVerificationRequest) -> None:
        await self._replace(
            self.verification_requests, to_document(request, request.request_id), "save_verification_request"
        )

    async def list_verification_requests(self) -> List[DeathVerificationRequest]:
        documents = await self._find(self.verification_requests, {}, "list_verification_requests")
        return [from_document(DeathVerificationRequest, document) for document in documents]
