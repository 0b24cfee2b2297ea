"""Pytest configuration and fixtures."""

from datetime import UTC, datetime
from decimal import Decimal
from itertools import count

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker

from txdedup.main import app
from txdedup.models import Base, Transaction
from txdedup.services.decisions import MergeDecision


class FakeTransactionStore:
    """In-memory transaction store.

    ``fail_on_delete`` ids raise on deletion, ``vanish_on_delete`` ids are
    dropped by "someone else" just before our delete runs.
    """

    def __init__(self, transactions=()):
        self.transactions: dict[str, Transaction] = {t.id: t for t in transactions}
        self.deleted: list[str] = []
        self.calls: list[str] = []
        self.fail_on_delete: set[str] = set()
        self.vanish_on_delete: set[str] = set()

    def add(self, *transactions: Transaction) -> None:
        for t in transactions:
            self.transactions[t.id] = t

    async def find_by_id(self, transaction_id):
        self.calls.append("find_by_id")
        return self.transactions.get(transaction_id)

    async def find_many_by_user_and_date_range(self, user_id, start_date, end_date, exclude_id=None):
        self.calls.append("find_many_by_user_and_date_range")
        found = [
            t
            for t in self.transactions.values()
            if t.user_id == user_id and start_date <= t.date <= end_date and t.id != exclude_id
        ]
        found.sort(key=lambda t: t.created_at)
        found.sort(key=lambda t: t.date, reverse=True)
        return found

    async def delete_by_id(self, transaction_id):
        self.calls.append("delete_by_id")
        if transaction_id in self.fail_on_delete:
            raise ConnectionError(f"store unavailable deleting {transaction_id}")
        if transaction_id in self.vanish_on_delete:
            self.transactions.pop(transaction_id, None)
        if self.transactions.pop(transaction_id, None) is None:
            return False
        self.deleted.append(transaction_id)
        return True


class RecordingDecisionSink:
    """Decision sink that keeps every decision."""

    def __init__(self):
        self.decisions: list[MergeDecision] = []

    async def record(self, decision: MergeDecision) -> None:
        self.decisions.append(decision)


class FailingDecisionSink:
    """Decision sink that always fails."""

    async def record(self, decision: MergeDecision) -> None:
        raise RuntimeError("sink offline")


_created = count()


def build_transaction(
    id: str,
    *,
    user_id: str = "user-1",
    amount: str = "50.00",
    description: str = "Coffee Shop",
    date: datetime = datetime(2024, 1, 15, 12, 0, tzinfo=UTC),
    account_id: str | None = "acc-1",
    location: str | None = None,
    type: str = "expense",
    created_at: datetime | None = None,
) -> Transaction:
    """Build a detached transaction with a distinct creation time."""
    if created_at is None:
        created_at = datetime(2024, 2, 1, tzinfo=UTC).replace(microsecond=next(_created) % 1_000_000)
    return Transaction(
        id=id,
        user_id=user_id,
        account_id=account_id,
        type=type,
        amount=Decimal(amount),
        description=description,
        date=date,
        location=location,
        created_at=created_at,
    )


@pytest.fixture
def make_transaction():
    """Factory for detached transactions."""
    return build_transaction


@pytest.fixture
def store():
    """Empty in-memory transaction store."""
    return FakeTransactionStore()


@pytest.fixture
def sink():
    """Decision sink recording every decision."""
    return RecordingDecisionSink()


@pytest.fixture
async def client():
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def db_engine():
    """Create in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Create database session for testing."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
async def async_engine():
    """Create in-memory async SQLite database for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    # The driver defers BEGIN until the first write; emit it ourselves so
    # savepoints and rollbacks cover the whole session transaction
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine):
    """Create async database session for testing."""
    Session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
    async with Session() as session:
        yield session
