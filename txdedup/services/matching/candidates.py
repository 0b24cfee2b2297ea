"""Candidate selection for duplicate comparison."""

import logging
from datetime import datetime, timedelta

from txdedup.models import Transaction
from txdedup.services.store import TransactionStore

from .settings import DeduplicationSettings
from .similarity import as_utc

logger = logging.getLogger(__name__)


def candidate_bounds(
    transaction: Transaction, settings: DeduplicationSettings
) -> tuple[datetime, datetime]:
    """Inclusive date window around a transaction."""
    tolerance = timedelta(days=settings.date_tolerance_days)
    center = as_utc(transaction.date)
    return center - tolerance, center + tolerance


class CandidateSelector:
    """Fetches the transactions worth comparing against one transaction.

    Only the same user's transactions dated within the tolerance window are
    returned, which keeps single-transaction detection proportional to the
    window rather than the full history.
    """

    def __init__(self, store: TransactionStore):
        self.store = store

    async def candidates_for(
        self,
        transaction: Transaction,
        user_id: str,
        settings: DeduplicationSettings,
    ) -> list[Transaction]:
        """Query the store for a transaction's candidates."""
        start, end = candidate_bounds(transaction, settings)
        candidates = await self.store.find_many_by_user_and_date_range(
            user_id, start, end, exclude_id=transaction.id
        )
        logger.debug(f"{len(candidates)} candidates for {transaction.id} between {start} and {end}")
        return candidates
