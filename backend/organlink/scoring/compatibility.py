from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..errors import InvalidInput
from ..models.common import utcnow
from ..models.match import MatchScore
from ..models.organ import Organ
from ..models.recipient import Recipient
from ..models.waitlist import WaitingListEntry
from .blood import is_blood_compatible
from .geography import RegionMap
from .weights import MAX_TOTAL_SCORE, ScoringWeights

MAX_URGENCY = 10


@dataclass(frozen=True)
class ScoringPolicy:
    max_wait: timedelta = timedelta(days=365)
    geo_max_distance_km: float = 1000.0
    regions: RegionMap = field(default_factory=RegionMap)

    @classmethod
    def from_settings(cls, settings) -> "ScoringPolicy":
        return cls(
            max_wait=timedelta(days=settings.max_wait_days),
            geo_max_distance_km=settings.geo_max_distance_km,
            regions=RegionMap(settings.region_distances),
        )


class CompatibilityScorer:
    """Weighted multi-factor match score between one organ and one recipient.

    Scoring is a pure function of its arguments: the recipient's waiting-list
    entry and the evaluation time are passed in rather than looked up, so the
    same inputs always produce the same :class:`MatchScore`.
    """

    def __init__(self, policy: ScoringPolicy | None = None) -> None:
        self.policy = policy or ScoringPolicy()

    def score(
        self,
        organ: Organ | None,
        recipient: Recipient | None,
        weights: ScoringWeights,
        entry: WaitingListEntry | None = None,
        now: datetime | None = None,
    ) -> MatchScore:
        if organ is None:
            raise InvalidInput("Organ reference is unresolved")
        if recipient is None:
            raise InvalidInput("Recipient reference is unresolved")
        now = now or utcnow()

        blood_ok = is_blood_compatible(organ.blood_type, recipient.blood_type)
        blood = weights.blood if blood_ok else 0
        urgency = self.urgency_score(entry, weights)
        waiting = self.waiting_time_score(entry, weights, now)
        geographic = self.geographic_score(organ.region, entry.region if entry else recipient.region, weights)
        medical = self.medical_score(organ, weights)

        total = min(blood + urgency + waiting + geographic + medical, MAX_TOTAL_SCORE)
        return MatchScore(
            total_score=total,
            blood_compatibility=blood,
            urgency_score=urgency,
            waiting_time_score=waiting,
            geographic_score=geographic,
            medical_score=medical,
            is_compatible=blood_ok and total >= weights.minimum_score,
        )

    @staticmethod
    def urgency_score(entry: WaitingListEntry | None, weights: ScoringWeights) -> int:
        if entry is None:
            return 0
        level = max(0, min(entry.urgency_level, MAX_URGENCY))
        return level * weights.urgency // MAX_URGENCY

    def waiting_time_score(self, entry: WaitingListEntry | None, weights: ScoringWeights, now: datetime) -> int:
        if entry is None:
            return 0
        elapsed = now - entry.added_timestamp
        if elapsed <= timedelta(0):
            return 0
        max_wait = self.policy.max_wait
        if max_wait <= timedelta(0) or elapsed >= max_wait:
            return weights.waiting
        return math.floor(weights.waiting * (elapsed / max_wait))

    def geographic_score(self, organ_region: str, recipient_region: str, weights: ScoringWeights) -> int:
        if organ_region == recipient_region:
            return weights.geographic
        km = self.policy.regions.distance(organ_region, recipient_region)
        limit = self.policy.geo_max_distance_km
        if km is None or limit <= 0 or km >= limit:
            return 0
        return max(0, math.floor(weights.geographic * (1 - km / limit)))

    @staticmethod
    def medical_score(organ: Organ, weights: ScoringWeights) -> int:
        if organ.quality_validated:
            return weights.medical
        return weights.medical // 2
