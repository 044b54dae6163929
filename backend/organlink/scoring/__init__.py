from .blood import is_blood_compatible
from .compatibility import CompatibilityScorer, ScoringPolicy
from .geography import RegionMap
from .weights import ScoringWeights

__all__ = ["CompatibilityScorer", "RegionMap", "ScoringPolicy", "ScoringWeights", "is_blood_compatible"]
