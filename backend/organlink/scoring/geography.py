from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Tuple


class RegionMap:
    """Symmetric region-to-region distances in kilometres.

    Keys of the source mapping look like ``"North|South"``. A region is at
    distance zero from itself; pairs that were never configured have no
    distance.
    """

    SEPARATOR = "|"

    def __init__(self, distances: Mapping[str, float] | None = None) -> None:
        self._distances: Dict[Tuple[str, str], float] = {}
        for key, km in (distances or {}).items():
            left, _, right = key.partition(self.SEPARATOR)
            if not left or not right:
                raise ValueError(f"Region distance key must look like 'A|B', got {key!r}")
            self.set_distance(left.strip(), right.strip(), float(km))

    def set_distance(self, left: str, right: str, km: float) -> None:
        if km < 0:
            raise ValueError("Region distance cannot be negative")
        self._distances[(left, right)] = km
        self._distances[(right, left)] = km

    def distance(self, origin: str, destination: str) -> float | None:
        if origin == destination:
            return 0.0
        return self._distances.get((origin, destination))

    def within(self, origin: str, max_distance: float, regions: Iterable[str]) -> List[str]:
        reachable = []
        for region in regions:
            km = self.distance(origin, region)
            if km is not None and km <= max_distance:
                reachable.append(region)
        return reachable
