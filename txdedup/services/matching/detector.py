"""Pairwise duplicate detection."""

import logging
from collections.abc import Container, Iterable, Iterator, Sequence

from txdedup.models import Transaction

from .candidates import CandidateSelector
from .match import DuplicateMatch, MatchKey
from .scorer import SimilarityScorer
from .settings import DeduplicationSettings

logger = logging.getLogger(__name__)


class PairwiseMatchDetector:
    """Finds likely duplicates by scoring transaction pairs.

    Pairs scoring at or below MIN_CONFIDENCE are discarded. Range scans
    collapse symmetric pairs so A-B and B-A are reported once.
    """

    MIN_CONFIDENCE = 0.5
    DEFAULT_BATCH_SIZE = 100

    def __init__(
        self,
        scorer: SimilarityScorer | None = None,
        candidate_selector: CandidateSelector | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize detector.

        Args:
            scorer: Pair scorer (defaults to SimilarityScorer)
            candidate_selector: Store-backed selector, required for
                detect_for_transaction
            batch_size: Transactions per range-scan batch
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.scorer = scorer or SimilarityScorer()
        self.candidate_selector = candidate_selector
        self.batch_size = batch_size

    def find_matches(
        self,
        transaction: Transaction,
        candidates: Iterable[Transaction],
        settings: DeduplicationSettings,
    ) -> list[DuplicateMatch]:
        """Score a transaction against candidates.

        Args:
            transaction: Transaction to check
            candidates: Transactions to compare against
            settings: Resolved deduplication settings

        Returns:
            Matches above MIN_CONFIDENCE, highest confidence first; equal
            confidences keep candidate order
        """
        matches: list[DuplicateMatch] = []

        for candidate in candidates:
            if candidate.id == transaction.id or candidate.user_id != transaction.user_id:
                continue

            result = self.scorer.score(transaction, candidate, settings)
            if result.confidence > self.MIN_CONFIDENCE:
                matches.append(
                    DuplicateMatch(
                        key=MatchKey(transaction.id, candidate.id),
                        original_transaction=transaction,
                        duplicate_transaction=candidate,
                        confidence=result.confidence,
                        matching_criteria=result.matching_criteria,
                    )
                )

        # sorted() is stable
        return sorted(matches, key=lambda m: m.confidence, reverse=True)

    async def detect_for_transaction(
        self,
        transaction: Transaction,
        user_id: str,
        settings: DeduplicationSettings,
    ) -> list[DuplicateMatch]:
        """Find duplicates of one transaction among the stored candidates."""
        if self.candidate_selector is None:
            raise RuntimeError("detect_for_transaction needs a candidate selector")

        candidates = await self.candidate_selector.candidates_for(transaction, user_id, settings)
        return self.find_matches(transaction, candidates, settings)

    def scan(
        self,
        transactions: Sequence[Transaction],
        settings: DeduplicationSettings,
        exclude: Container[str] = (),
    ) -> Iterator[tuple[Transaction, list[DuplicateMatch]]]:
        """Detect duplicates across an already loaded set of transactions.

        Transactions are processed in batches of ``batch_size``; each one is
        compared with every other loaded transaction, whatever its date, so
        recurring charges far apart still pair on amount and description. A
        match is dropped when the same unordered pair was already reported.

        ``exclude`` is consulted lazily, so a caller that merges while
        iterating can add removed ids and they will be skipped from then on.

        Yields:
            (transaction, new matches for that transaction)
        """
        transactions = list(transactions)
        seen_pairs: set[frozenset[str]] = set()
        total_batches = (len(transactions) + self.batch_size - 1) // self.batch_size

        for batch_number, offset in enumerate(range(0, len(transactions), self.batch_size), start=1):
            batch = transactions[offset : offset + self.batch_size]
            logger.debug(f"Scanning batch {batch_number}/{total_batches} ({len(batch)} transactions)")

            for transaction in batch:
                if transaction.id in exclude:
                    continue

                candidates = [
                    t for t in transactions if t.id != transaction.id and t.id not in exclude
                ]
                matches = self.find_matches(transaction, candidates, settings)

                new_matches = []
                for match in matches:
                    if match.key.pair in seen_pairs:
                        continue
                    seen_pairs.add(match.key.pair)
                    new_matches.append(match)

                yield transaction, new_matches
