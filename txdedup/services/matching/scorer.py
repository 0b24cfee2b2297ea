"""Confidence scoring for transaction pairs."""

from dataclasses import dataclass, field

from txdedup.models import Transaction

from .settings import DeduplicationSettings
from .similarity import (
    amount_similarity,
    date_similarity,
    normalize_text,
    string_similarity,
)


@dataclass(frozen=True)
class CriterionScore:
    """Score of one criterion for a pair."""

    name: str
    weight: float
    score: float
    matched: bool


@dataclass
class ScoreResult:
    """Weighted confidence for a pair of transactions."""

    confidence: float
    matching_criteria: list[str] = field(default_factory=list)
    criteria: list[CriterionScore] = field(default_factory=list)


class SimilarityScorer:
    """Rates how likely two transactions are the same real-world event.

    Each enabled and applicable criterion yields a score in [0, 1]; the
    confidence is their weighted average. Criteria that are disabled, or
    that cannot be evaluated (a missing location or description on either
    side), are left out of both numerator and denominator, so absence never
    counts against a pair.
    """

    # Weights when all five criteria apply
    WEIGHTS: dict[str, float] = {
        "date": 0.25,
        "amount": 0.30,
        "description": 0.25,
        "location": 0.10,
        "account": 0.10,
    }

    # Individual score a criterion must exceed to be reported as matching.
    # Description uses the per-call similarity threshold instead.
    MATCH_BARS: dict[str, float] = {
        "date": 0.8,
        "amount": 0.9,
        "location": 0.8,
    }

    def score(
        self,
        first: Transaction,
        second: Transaction,
        settings: DeduplicationSettings,
    ) -> ScoreResult:
        """Score a pair of transactions.

        Args:
            first: One transaction
            second: The transaction to compare against
            settings: Tolerances, thresholds and enabled criteria

        Returns:
            ScoreResult with confidence, matching criteria and breakdown
        """
        enabled = settings.enabled_criteria
        criteria: list[CriterionScore] = []

        if enabled.date:
            score = date_similarity(first.date, second.date, settings.date_tolerance_days)
            criteria.append(self._criterion("date", score, score > self.MATCH_BARS["date"]))

        if enabled.amount:
            score = amount_similarity(
                first.amount, second.amount, settings.amount_tolerance_percent
            )
            criteria.append(self._criterion("amount", score, score > self.MATCH_BARS["amount"]))

        if enabled.description:
            score = self._description_score(first, second, settings)
            if score is not None:
                threshold = settings.description_similarity_threshold
                criteria.append(self._criterion("description", score, score > threshold))

        if enabled.location:
            score = self._location_score(first, second)
            if score is not None:
                criteria.append(
                    self._criterion("location", score, score > self.MATCH_BARS["location"])
                )

        if enabled.account:
            score = 1.0 if first.account_id == second.account_id else 0.0
            criteria.append(self._criterion("account", score, score == 1.0))

        total_weight = sum(c.weight for c in criteria)
        weighted_score = sum(c.score * c.weight for c in criteria)
        confidence = weighted_score / total_weight if total_weight > 0 else 0.0

        return ScoreResult(
            confidence=confidence,
            matching_criteria=[c.name for c in criteria if c.matched],
            criteria=criteria,
        )

    def _criterion(self, name: str, score: float, matched: bool) -> CriterionScore:
        return CriterionScore(name=name, weight=self.WEIGHTS[name], score=score, matched=matched)

    def _description_score(
        self,
        first: Transaction,
        second: Transaction,
        settings: DeduplicationSettings,
    ) -> float | None:
        """Description similarity, clamped to 0.0 below the threshold."""
        desc1 = normalize_text(first.description)
        desc2 = normalize_text(second.description)
        if not desc1 or not desc2:
            return None

        similarity = string_similarity(desc1, desc2)
        return similarity if similarity >= settings.description_similarity_threshold else 0.0

    def _location_score(self, first: Transaction, second: Transaction) -> float | None:
        loc1 = normalize_text(first.location)
        loc2 = normalize_text(second.location)
        if not loc1 or not loc2:
            return None
        return string_similarity(loc1, loc2)
