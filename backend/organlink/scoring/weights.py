from __future__ import annotations

from typing import Dict, Mapping

from ..errors import InvalidInput

BLOOD_WEIGHT = "bloodWeight"
URGENCY_WEIGHT = "urgencyWeight"
WAITING_WEIGHT = "waitingWeight"
GEOGRAPHIC_WEIGHT = "geographicWeight"
MEDICAL_WEIGHT = "medicalWeight"
MINIMUM_SCORE = "minimumScore"

COMPONENT_PARAMETERS = (BLOOD_WEIGHT, URGENCY_WEIGHT, WAITING_WEIGHT, GEOGRAPHIC_WEIGHT, MEDICAL_WEIGHT)
MAX_TOTAL_SCORE = 100

DEFAULT_WEIGHTS: Dict[str, int] = {
    BLOOD_WEIGHT: 30,
    URGENCY_WEIGHT: 25,
    WAITING_WEIGHT: 20,
    GEOGRAPHIC_WEIGHT: 15,
    MEDICAL_WEIGHT: 10,
    MINIMUM_SCORE: 40,
}


class ScoringWeights:
    """Named integer weights for the five score components plus the compatibility threshold.

    The component weights may never sum above 100, so a total score is always
    the plain sum of its components.
    """

    def __init__(self, values: Mapping[str, int] | None = None) -> None:
        merged = {**DEFAULT_WEIGHTS, **(values or {})}
        unknown = set(merged) - set(DEFAULT_WEIGHTS)
        if unknown:
            raise InvalidInput(f"Unknown scoring parameter(s): {', '.join(sorted(unknown))}")
        for parameter, weight in merged.items():
            self._check_range(parameter, weight)
        self._check_total(merged)
        self._values: Dict[str, int] = dict(merged)

    @classmethod
    def from_settings(cls, settings) -> "ScoringWeights":
        return cls(
            {
                BLOOD_WEIGHT: settings.blood_weight,
                URGENCY_WEIGHT: settings.urgency_weight,
                WAITING_WEIGHT: settings.waiting_weight,
                GEOGRAPHIC_WEIGHT: settings.geographic_weight,
                MEDICAL_WEIGHT: settings.medical_weight,
                MINIMUM_SCORE: settings.minimum_score,
            }
        )

    @staticmethod
    def _check_range(parameter: str, weight: int) -> None:
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise InvalidInput(f"Weight for {parameter} must be an integer")
        if weight < 0 or weight > MAX_TOTAL_SCORE:
            raise InvalidInput(f"Weight for {parameter} must be between 0 and {MAX_TOTAL_SCORE}")

    @staticmethod
    def _check_total(values: Mapping[str, int]) -> None:
        total = sum(values[name] for name in COMPONENT_PARAMETERS)
        if total > MAX_TOTAL_SCORE:
            raise InvalidInput(f"Component weights sum to {total}, above the maximum of {MAX_TOTAL_SCORE}")

    def get(self, parameter: str) -> int:
        if parameter not in self._values:
            raise InvalidInput(f"Unknown scoring parameter: {parameter}")
        return self._values[parameter]

    def update(self, parameter: str, weight: int) -> None:
        if parameter not in self._values:
            raise InvalidInput(f"Unknown scoring parameter: {parameter}")
        self._check_range(parameter, weight)
        candidate = {**self._values, parameter: weight}
        self._check_total(candidate)
        self._values = candidate

    def as_dict(self) -> Dict[str, int]:
        return dict(self._values)

    @property
    def blood(self) -> int:
        return self._values[BLOOD_WEIGHT]

    @property
    def urgency(self) -> int:
        return self._values[URGENCY_WEIGHT]

    @property
    def waiting(self) -> int:
        return self._values[WAITING_WEIGHT]

    @property
    def geographic(self) -> int:
        return self._values[GEOGRAPHIC_WEIGHT]

    @property
    def medical(self) -> int:
        return self._values[MEDICAL_WEIGHT]

    @property
    def minimum_score(self) -> int:
        return self._values[MINIMUM_SCORE]
