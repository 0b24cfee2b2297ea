"""Merging of duplicate transactions."""

import logging
from dataclasses import dataclass

from txdedup.models import Transaction
from txdedup.services.decisions import DecisionAction, DecisionSink, MergeDecision, record_decision
from txdedup.services.matching.match import DuplicateMatch, MatchStatus
from txdedup.services.store import TransactionStore

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    """Result of merging one match."""

    kept: Transaction
    removed: Transaction
    already_removed: bool = False


class MergeExecutor:
    """Resolves a duplicate pair by deleting one of its transactions.

    Survivorship: the transaction recorded first (earlier ``created_at``)
    is kept, whichever side the detector labelled original. Deletion is a
    hard delete. A transaction that is already gone, e.g. removed by an
    overlapping run, counts as merged.
    """

    def __init__(self, store: TransactionStore, decision_sink: DecisionSink | None = None):
        self.store = store
        self.decision_sink = decision_sink

    @staticmethod
    def choose_survivor(match: DuplicateMatch) -> tuple[Transaction, Transaction]:
        """Return (keep, remove) for a match; ties keep the original."""
        original = match.original_transaction
        duplicate = match.duplicate_transaction
        if original.created_at <= duplicate.created_at:
            return original, duplicate
        return duplicate, original

    async def remove(self, transaction: Transaction, kept: Transaction) -> bool:
        """Delete ``transaction`` in favour of ``kept``.

        Returns:
            True if this call deleted it, False if it was already gone

        Raises:
            Any store error, unchanged
        """
        deleted = await self.store.delete_by_id(transaction.id)
        if not deleted:
            logger.warning(
                f"Transaction {transaction.id} already deleted, keeping {kept.id} is a no-op"
            )
        return deleted

    async def auto_merge(self, match: DuplicateMatch, user_id: str) -> MergeOutcome:
        """Merge a high-confidence match without review.

        Marks the match ``auto_merged`` and reports the decision once the
        delete succeeds.
        """
        keep, remove = self.choose_survivor(match)
        logger.info(f"Auto-merging duplicate transactions: keeping {keep.id}, deleting {remove.id}")

        deleted = await self.remove(remove, keep)
        match.resolve(MatchStatus.AUTO_MERGED)

        await record_decision(
            self.decision_sink,
            MergeDecision.from_match(
                match, user_id, DecisionAction.AUTO_MERGED, kept_id=keep.id, removed_id=remove.id
            ),
        )
        return MergeOutcome(kept=keep, removed=remove, already_removed=not deleted)
