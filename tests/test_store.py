"""Tests for the SQLAlchemy transaction store."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import Delete
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from txdedup.models import Transaction
from txdedup.services import DeduplicationService, SQLTransactionStore
from txdedup.services.matching import MatchStatus

# SQLite keeps no timezone, so these tests stay naive throughout
DAY = datetime(2024, 1, 15, 12, 0)


def row(id, user_id="user-1", date=DAY, created_at=datetime(2024, 2, 1), **kwargs):
    return Transaction(
        id=id,
        user_id=user_id,
        account_id=kwargs.get("account_id", "acc-1"),
        type="expense",
        amount=Decimal(kwargs.get("amount", "42.00")),
        description=kwargs.get("description", "Book Store"),
        date=date,
        created_at=created_at,
    )


@pytest.fixture
async def sql_store(async_session):
    async_session.add_all(
        [
            row("t1", created_at=datetime(2024, 2, 1)),
            row("t2", created_at=datetime(2024, 2, 2)),
            row("t3", date=DAY + timedelta(days=2)),
            row("t4", date=DAY + timedelta(days=40)),
            row("other", user_id="user-2"),
        ]
    )
    await async_session.commit()
    return SQLTransactionStore(async_session)


class TestSQLTransactionStore:
    """Tests for SQLTransactionStore."""

    @pytest.mark.asyncio
    async def test_find_by_id(self, sql_store):
        found = await sql_store.find_by_id("t1")

        assert found is not None
        assert found.amount == Decimal("42.00")
        assert await sql_store.find_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_find_many_filters_user_and_range(self, sql_store):
        found = await sql_store.find_many_by_user_and_date_range(
            "user-1", DAY - timedelta(days=1), DAY + timedelta(days=3)
        )

        # Newest first, creation order within a day
        assert [t.id for t in found] == ["t3", "t1", "t2"]

    @pytest.mark.asyncio
    async def test_find_many_bounds_inclusive(self, sql_store):
        found = await sql_store.find_many_by_user_and_date_range("user-1", DAY, DAY)

        assert {t.id for t in found} == {"t1", "t2"}

    @pytest.mark.asyncio
    async def test_find_many_excludes_id(self, sql_store):
        found = await sql_store.find_many_by_user_and_date_range(
            "user-1", DAY, DAY, exclude_id="t1"
        )

        assert [t.id for t in found] == ["t2"]

    @pytest.mark.asyncio
    async def test_delete_by_id(self, sql_store):
        assert await sql_store.delete_by_id("t1") is True
        assert await sql_store.delete_by_id("t1") is False
        assert await sql_store.find_by_id("t1") is None

    @pytest.mark.asyncio
    async def test_list_user_ids(self, sql_store):
        assert await sql_store.list_user_ids() == ["other", "user-1"]

    @pytest.mark.asyncio
    async def test_range_detection_deletes_duplicate_row(self, sql_store):
        service = DeduplicationService(sql_store)

        result = await service.detect_duplicates_in_range(
            "user-1", DAY - timedelta(days=5), DAY + timedelta(days=5)
        )

        merged = [m.id for m in result.matches if m.status == MatchStatus.AUTO_MERGED]
        assert merged == ["t1-t2"]
        assert result.pending_review == 2
        assert await sql_store.find_by_id("t1") is not None
        assert await sql_store.find_by_id("t2") is None


def fail_once(monkeypatch, name, should_fail=lambda *args: True):
    """Make one ``AsyncSession`` method raise on its first matching call."""
    real = getattr(AsyncSession, name)
    state = {"failed": False}

    async def flaky(self, *args, **kwargs):
        if not state["failed"] and should_fail(*args):
            state["failed"] = True
            raise OperationalError(name.upper(), {}, Exception("connection reset"))
        return await real(self, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, name, flaky)


class TestFailedDeletes:
    """Tests that a failed delete leaves the session usable."""

    @pytest.mark.asyncio
    async def test_failed_commit_is_rolled_back(self, sql_store, monkeypatch):
        fail_once(monkeypatch, "commit")

        with pytest.raises(OperationalError):
            await sql_store.delete_by_id("t1")

        assert await sql_store.delete_by_id("t3") is True
        assert await sql_store.find_by_id("t1") is not None
        assert await sql_store.find_by_id("t3") is None

    @pytest.mark.asyncio
    async def test_failed_delete_does_not_stop_later_merges(
        self, sql_store, async_session, monkeypatch
    ):
        """Test the range job keeps merging after one delete statement fails."""
        garden = {
            "amount": "17.50",
            "description": "Garden Centre",
            "date": DAY + timedelta(days=4),
        }
        async_session.add_all(
            [
                row("t5", created_at=datetime(2024, 2, 3), **garden),
                row("t6", created_at=datetime(2024, 2, 4), **garden),
            ]
        )
        await async_session.commit()
        fail_once(monkeypatch, "execute", lambda statement, *args: isinstance(statement, Delete))
        service = DeduplicationService(sql_store)

        result = await service.detect_duplicates_in_range(
            "user-1", DAY - timedelta(days=5), DAY + timedelta(days=5)
        )

        assert result.failed_merges == 1
        assert result.auto_merged == 1
        assert await sql_store.find_by_id("t5") is not None
        assert await sql_store.find_by_id("t6") is not None
        assert await sql_store.find_by_id("t2") is None
