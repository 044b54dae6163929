from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, Iterable, List, Tuple

from loguru import logger

from ..errors import DuplicateEntry, InvalidInput, NotFound
from ..models.common import OrganType, utcnow
from ..models.waitlist import Priority, WaitingListEntry
from ..utils.ids import IdSequence

EntryKey = Tuple[str, OrganType]


def priority_key(entry: WaitingListEntry) -> tuple:
    return (-int(entry.priority), -entry.urgency_level, entry.added_timestamp, entry.sequence)


class WaitingListManager:
    """Per organ type and region queues of recipients waiting for an organ.

    Entries move one way, from active to inactive. A recipient who needs to
    return to the list gets a fresh entry with a new timestamp.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow, sequence: IdSequence | None = None) -> None:
        self.clock = clock
        self._sequence = sequence or IdSequence()
        self._entries: List[WaitingListEntry] = []
        self._active: Dict[EntryKey, WaitingListEntry] = {}

    @staticmethod
    def _validate_urgency(urgency_level: int) -> None:
        if not 1 <= urgency_level <= 10:
            raise InvalidInput("Urgency level must be between 1 and 10")

    def add(
        self,
        recipient: str,
        organ_type: OrganType,
        urgency_level: int,
        region: str,
        priority: Priority = Priority.LOW,
    ) -> WaitingListEntry:
        self._validate_urgency(urgency_level)
        key = (recipient, OrganType(organ_type))
        if key in self._active:
            raise DuplicateEntry(f"Recipient {recipient} already waiting for {key[1].value}")
        entry = WaitingListEntry(
            recipient=recipient,
            organ_type=key[1],
            urgency_level=urgency_level,
            region=region,
            priority=Priority(priority),
            added_timestamp=self.clock(),
            is_active=True,
            sequence=self._sequence(),
        )
        self._entries.append(entry)
        self._active[key] = entry
        logger.info(
            "Waiting list add: {} for {} in {} (urgency {}, priority {})",
            recipient,
            key[1].value,
            region,
            urgency_level,
            entry.priority.name,
        )
        return entry.model_copy()

    def get_by_organ_region(
        self, organ_type: OrganType, region: str, include_inactive: bool = False
    ) -> List[WaitingListEntry]:
        return [
            entry.model_copy()
            for entry in self._entries
            if entry.organ_type == organ_type
            and entry.region == region
            and (include_inactive or entry.is_active)
        ]

    def prioritize(self, organ_type: OrganType, region: str) -> List[WaitingListEntry]:
        return sorted(self.get_by_organ_region(organ_type, region), key=priority_key)

    def update_priority(
        self,
        recipient: str,
        organ_type: OrganType,
        urgency_level: int,
        priority: Priority,
        region: str,
    ) -> WaitingListEntry:
        self._validate_urgency(urgency_level)
        entry = self._active.get((recipient, OrganType(organ_type)))
        if entry is None:
            raise NotFound(f"No active waiting-list entry for {recipient} ({OrganType(organ_type).value})")
        entry.urgency_level = urgency_level
        entry.priority = Priority(priority)
        entry.region = region
        logger.info("Waiting list update: {} urgency {} priority {}", recipient, urgency_level, entry.priority.name)
        return entry.model_copy()

    def deactivate(self, recipient: str, organ_type: OrganType) -> WaitingListEntry | None:
        entry = self._active.pop((recipient, OrganType(organ_type)), None)
        if entry is None:
            return None
        entry.is_active = False
        logger.info("Waiting list deactivate: {} for {}", recipient, entry.organ_type.value)
        return entry.model_copy()

    def deactivate_all(self, recipient: str) -> List[WaitingListEntry]:
        keys = [key for key in self._active if key[0] == recipient]
        return [self.deactivate(*key) for key in keys]

    def _find(self, sequence: int) -> WaitingListEntry | None:
        for entry in self._entries:
            if entry.sequence == sequence:
                return entry
        return None

    def restore(self, snapshot: WaitingListEntry | None) -> None:
        """Undo a deactivation that belonged to a failed operation."""
        if snapshot is None:
            return
        key = (snapshot.recipient, snapshot.organ_type)
        if key in self._active:
            return
        entry = self._find(snapshot.sequence)
        if entry is not None:
            entry.is_active = True
            self._active[key] = entry

    def reset(self, snapshot: WaitingListEntry) -> None:
        """Put an entry's queue fields back to an earlier copy."""
        entry = self._find(snapshot.sequence)
        if entry is None:
            return
        entry.urgency_level = snapshot.urgency_level
        entry.priority = snapshot.priority
        entry.region = snapshot.region

    def discard(self, sequence: int) -> None:
        """Drop an entry that was never stored."""
        entry = self._find(sequence)
        if entry is None:
            return
        self._entries.remove(entry)
        key = (entry.recipient, entry.organ_type)
        if self._active.get(key) is entry:
            del self._active[key]

    def load(self, entries: Iterable[WaitingListEntry]) -> None:
        """Replace the queues with stored entries, keeping their sequence order."""
        self._entries = []
        self._active = {}
        for stored in sorted(entries, key=lambda item: item.sequence):
            entry = stored.model_copy()
            key = (entry.recipient, entry.organ_type)
            if entry.is_active and key in self._active:
                logger.warning(
                    "Stored entry {} duplicates the active entry for {}; keeping it inactive", entry.sequence, key[0]
                )
                entry.is_active = False
            self._entries.append(entry)
            if entry.is_active:
                self._active[key] = entry
            self._sequence.advance_past(entry.sequence)
        logger.info("Waiting list loaded: {} entries, {} active", len(self._entries), len(self._active))

    def get_active(self, recipient: str, organ_type: OrganType) -> WaitingListEntry | None:
        entry = self._active.get((recipient, OrganType(organ_type)))
        return entry.model_copy() if entry else None

    def entries_for(self, recipient: str) -> List[WaitingListEntry]:
        return [entry.model_copy() for entry in self._entries if entry.recipient == recipient]

    def active_entries(self, organ_type: OrganType) -> List[WaitingListEntry]:
        return [entry.model_copy() for entry in self._entries if entry.is_active and entry.organ_type == organ_type]

    def regions(self, organ_type: OrganType) -> List[str]:
        seen: List[str] = []
        for entry in self._entries:
            if entry.is_active and entry.organ_type == organ_type and entry.region not in seen:
                seen.append(entry.region)
        return seen
