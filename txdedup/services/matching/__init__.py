"""Transaction duplicate matching engine."""

from .candidates import CandidateSelector
from .detector import PairwiseMatchDetector
from .match import DuplicateMatch, MatchKey, MatchStatus
from .scorer import CriterionScore, ScoreResult, SimilarityScorer
from .settings import DeduplicationSettings, EnabledCriteria, SettingsResolver

__all__ = [
    "CandidateSelector",
    "PairwiseMatchDetector",
    "DuplicateMatch",
    "MatchKey",
    "MatchStatus",
    "SimilarityScorer",
    "ScoreResult",
    "CriterionScore",
    "DeduplicationSettings",
    "EnabledCriteria",
    "SettingsResolver",
]
