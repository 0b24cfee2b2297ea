"""Deduplication service - detection, auto-merge and manual resolution."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from txdedup.config import settings as app_settings
from txdedup.models import Transaction
from txdedup.services.decisions import (
    DecisionAction,
    DecisionSink,
    LoggingDecisionSink,
    MergeDecision,
    record_decision,
)
from txdedup.services.errors import InvalidDateRangeError, TransactionNotFoundError
from txdedup.services.matching import (
    CandidateSelector,
    DeduplicationSettings,
    DuplicateMatch,
    MatchKey,
    MatchStatus,
    PairwiseMatchDetector,
    SettingsResolver,
)
from txdedup.services.matching.similarity import as_utc
from txdedup.services.merge import MergeExecutor
from txdedup.services.store import TransactionStore

logger = logging.getLogger(__name__)

SettingsOverrides = DeduplicationSettings | Mapping[str, Any] | None


@dataclass
class DeduplicationResult:
    """Result of a range deduplication run."""

    user_id: str
    start_date: datetime
    end_date: datetime
    matches: list[DuplicateMatch] = field(default_factory=list)
    auto_merged: int = 0
    pending_review: int = 0
    failed_merges: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def duplicates_found(self) -> int:
        return len(self.matches)


class DeduplicationService:
    """Detects duplicate transactions and resolves them.

    Flow for a range run:
    1. Validate the range (before touching the store)
    2. Load the user's transactions in the range
    3. Scan pairs in batches, collapsing symmetric matches
    4. Auto-merge matches at or above the auto-merge threshold
    5. Leave the rest pending for review

    Single-transaction detection is read-only. Approve and reject resolve a
    match a user reviewed.
    """

    def __init__(
        self,
        store: TransactionStore,
        settings_resolver: SettingsResolver | None = None,
        detector: PairwiseMatchDetector | None = None,
        merge_executor: MergeExecutor | None = None,
        decision_sink: DecisionSink | None = None,
        max_range_days: int = app_settings.dedup_max_range_days,
    ):
        """Initialize service.

        Args:
            store: Transaction store to read from and delete in
            settings_resolver: Default settings and override merging
            detector: Pairwise detector (built on ``store`` if omitted)
            merge_executor: Merge executor (built on ``store`` if omitted)
            decision_sink: Receives every resolution (logs by default)
            max_range_days: Longest range accepted for range detection
        """
        self.store = store
        self.settings_resolver = settings_resolver or SettingsResolver()
        self.decision_sink = decision_sink or LoggingDecisionSink()
        self.detector = detector or PairwiseMatchDetector(
            candidate_selector=CandidateSelector(store),
            batch_size=app_settings.dedup_batch_size,
        )
        self.merge_executor = merge_executor or MergeExecutor(store, self.decision_sink)
        self.max_range_days = max_range_days

    def validate_range(self, start_date: datetime, end_date: datetime) -> None:
        """Reject inverted, empty or over-long ranges; naive bounds are read as UTC."""
        start_date, end_date = as_utc(start_date), as_utc(end_date)
        if start_date >= end_date:
            raise InvalidDateRangeError("Start date must be before end date")
        if end_date - start_date > timedelta(days=self.max_range_days):
            raise InvalidDateRangeError(f"Date range cannot exceed {self.max_range_days} days")

    async def detect_duplicates_in_range(
        self,
        user_id: str,
        start_date: datetime,
        end_date: datetime,
        settings: SettingsOverrides = None,
    ) -> DeduplicationResult:
        """Detect duplicates across a date range and auto-merge the clear ones.

        Args:
            user_id: Owner of the transactions
            start_date: Inclusive start of the range
            end_date: Inclusive end of the range
            settings: Optional overrides of the default settings

        Returns:
            DeduplicationResult; every match is either auto-merged or
            counted as pending review

        Raises:
            InvalidDateRangeError: Bad range, raised before any store access
            InvalidSettingsError: Bad overrides
        """
        self.validate_range(start_date, end_date)
        start_date, end_date = as_utc(start_date), as_utc(end_date)
        resolved = self.settings_resolver.resolve(settings)

        started = datetime.now(UTC)
        result = DeduplicationResult(user_id=user_id, start_date=start_date, end_date=end_date)

        transactions = await self.store.find_many_by_user_and_date_range(
            user_id, start_date, end_date
        )
        logger.info(
            f"Detecting duplicates for user {user_id}: {len(transactions)} transactions "
            f"between {start_date} and {end_date}"
        )

        removed: set[str] = set()
        for _, matches in self.detector.scan(transactions, resolved, exclude=removed):
            for match in matches:
                # A side merged away earlier in this run makes the pair moot
                if removed.intersection(match.key.ids):
                    continue

                result.matches.append(match)
                if match.confidence < resolved.auto_merge_threshold:
                    continue

                try:
                    outcome = await self.merge_executor.auto_merge(match, user_id)
                except Exception as e:
                    logger.error(f"Failed to auto-merge duplicate {match.id}: {e}")
                    result.failed_merges += 1
                    result.errors.append(f"{match.id}: {e}")
                else:
                    removed.add(outcome.removed.id)

        result.auto_merged = sum(1 for m in result.matches if m.status == MatchStatus.AUTO_MERGED)
        result.pending_review = result.duplicates_found - result.auto_merged
        result.duration_seconds = (datetime.now(UTC) - started).total_seconds()

        logger.info(
            f"Duplicate detection for user {user_id} found {result.duplicates_found} matches: "
            f"{result.auto_merged} auto-merged, {result.pending_review} pending review, "
            f"{result.failed_merges} failed merges"
        )
        return result

    async def detect_duplicates_for_transaction(
        self,
        transaction_id: str,
        user_id: str,
        settings: SettingsOverrides = None,
    ) -> list[DuplicateMatch]:
        """Find duplicates of one stored transaction without merging anything.

        Raises:
            TransactionNotFoundError: Missing or owned by another user
        """
        resolved = self.settings_resolver.resolve(settings)
        transaction = await self._get_owned(transaction_id, user_id)
        return await self.detector.detect_for_transaction(transaction, user_id, resolved)

    async def preview_duplicates(
        self,
        draft: Transaction,
        user_id: str,
        settings: SettingsOverrides = None,
    ) -> list[DuplicateMatch]:
        """Find stored duplicates of a transaction that is about to be created.

        Scores a copy owned by ``user_id``; neither the draft nor the store
        is changed. A draft without an id gets a temporary ``draft...`` id.
        """
        resolved = self.settings_resolver.resolve(settings)
        candidate = Transaction(
            id=draft.id or f"draft{datetime.now(UTC):%Y%m%d%H%M%S%f}",
            user_id=user_id,
            account_id=draft.account_id,
            type=draft.type,
            amount=draft.amount,
            description=draft.description or "",
            date=draft.date,
            location=draft.location,
            created_at=draft.created_at,
        )
        return await self.detector.detect_for_transaction(candidate, user_id, resolved)

    async def approve_duplicate_merge(
        self,
        match_id: str | MatchKey,
        user_id: str,
        keep_transaction_id: str,
    ) -> DuplicateMatch:
        """Merge a reviewed match, keeping the transaction the user chose.

        Args:
            match_id: ``originalId-duplicateId`` or a MatchKey
            user_id: User resolving the match
            keep_transaction_id: One of the two ids in the match

        Returns:
            The match, now approved

        Raises:
            InvalidMatchIdError: Malformed id, or keep id not in the pair
            TransactionNotFoundError: Either transaction missing or not owned
        """
        key = MatchKey.parse(match_id)
        delete_transaction_id = key.other(keep_transaction_id)

        match = await self._load_match(key, user_id)
        keep, remove = (
            (match.original_transaction, match.duplicate_transaction)
            if keep_transaction_id == key.original_id
            else (match.duplicate_transaction, match.original_transaction)
        )

        await self.merge_executor.remove(remove, keep)
        match.resolve(MatchStatus.APPROVED)

        await record_decision(
            self.decision_sink,
            MergeDecision.from_match(
                match,
                user_id,
                DecisionAction.APPROVED,
                kept_id=keep.id,
                removed_id=delete_transaction_id,
            ),
        )
        logger.info(
            f"User {user_id} approved duplicate merge: kept {keep.id}, "
            f"deleted {delete_transaction_id}"
        )
        return match

    async def reject_duplicate_match(self, match_id: str | MatchKey, user_id: str) -> DuplicateMatch:
        """Mark a match as not a duplicate. Nothing is deleted.

        The rejection is only reported to the decision sink; a later range
        run may surface the same pair again.

        Raises:
            InvalidMatchIdError: Malformed id
            TransactionNotFoundError: Either transaction missing or not owned
        """
        key = MatchKey.parse(match_id)
        match = await self._load_match(key, user_id)
        match.resolve(MatchStatus.REJECTED)

        await record_decision(
            self.decision_sink,
            MergeDecision.from_match(match, user_id, DecisionAction.REJECTED, kept_id=key.original_id),
        )
        logger.info(f"User {user_id} rejected duplicate match: {match.id}")
        return match

    async def _get_owned(self, transaction_id: str, user_id: str) -> Transaction:
        transaction = await self.store.find_by_id(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def _load_match(self, key: MatchKey, user_id: str) -> DuplicateMatch:
        """Rebuild a match from the store, scored with the default settings."""
        try:
            original = await self._get_owned(key.original_id, user_id)
            duplicate = await self._get_owned(key.duplicate_id, user_id)
        except TransactionNotFoundError:
            raise TransactionNotFoundError(
                "Invalid transaction IDs or unauthorized access"
            ) from None

        score = self.detector.scorer.score(original, duplicate, self.settings_resolver.defaults)
        return DuplicateMatch(
            key=key,
            original_transaction=original,
            duplicate_transaction=duplicate,
            confidence=score.confidence,
            matching_criteria=score.matching_criteria,
        )
