from .engine import RankingEngine
from .scoring import DEFAULT_WEIGHT_PROFILES, RankingWeightProfile, build_weight_profiles
from .trending import TrendingCalculator

__all__ = [
    "DEFAULT_WEIGHT_PROFILES",
    "RankingEngine",
    "RankingWeightProfile",
    "TrendingCalculator",
    "build_weight_profiles",
]
