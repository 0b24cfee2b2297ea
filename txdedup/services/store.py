"""Transaction store used by the deduplication engine."""

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from txdedup.models import Transaction

logger = logging.getLogger(__name__)


class TransactionStore(Protocol):
    """The three store operations deduplication depends on."""

    async def find_by_id(self, transaction_id: str) -> Transaction | None: ...

    async def find_many_by_user_and_date_range(
        self,
        user_id: str,
        start_date: datetime,
        end_date: datetime,
        exclude_id: str | None = None,
    ) -> list[Transaction]: ...

    async def delete_by_id(self, transaction_id: str) -> bool: ...


class SQLTransactionStore:
    """Transaction store backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, transaction_id: str) -> Transaction | None:
        """Get a transaction by id, or None."""
        result = await self.session.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def find_many_by_user_and_date_range(
        self,
        user_id: str,
        start_date: datetime,
        end_date: datetime,
        exclude_id: str | None = None,
    ) -> list[Transaction]:
        """Get a user's transactions dated within [start_date, end_date].

        Args:
            user_id: Owner of the transactions
            start_date: Inclusive lower bound on the transaction date
            end_date: Inclusive upper bound on the transaction date
            exclude_id: Optional transaction id to leave out

        Returns:
            Transactions ordered newest first
        """
        query = select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.date >= start_date,
            Transaction.date <= end_date,
        )
        if exclude_id is not None:
            query = query.where(Transaction.id != exclude_id)

        result = await self.session.execute(
            query.order_by(Transaction.date.desc(), Transaction.created_at)
        )
        return list(result.scalars().all())

    async def delete_by_id(self, transaction_id: str) -> bool:
        """Hard-delete a transaction.

        The DELETE runs in a savepoint: if it fails only the savepoint is
        rolled back, so the session and the objects it has loaded stay
        usable for the rest of a range job. A failed commit rolls back the
        whole session.

        Returns:
            True if a row was removed, False if it was already gone
        """
        async with self.session.begin_nested():
            result = await self.session.execute(
                delete(Transaction).where(Transaction.id == transaction_id)
            )

        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        deleted = result.rowcount > 0
        if not deleted:
            logger.debug(f"Transaction {transaction_id} not found for deletion")
        return deleted

    async def list_user_ids(self) -> list[str]:
        """Distinct owners of stored transactions, for the nightly sweep."""
        result = await self.session.execute(
            select(Transaction.user_id).distinct().order_by(Transaction.user_id)
        )
        return list(result.scalars().all())
