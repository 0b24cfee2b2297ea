"""SQLAlchemy models for stored transactions."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, Index, Numeric, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TransactionType(str, Enum):
    """Transaction direction."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


def _new_id() -> str:
    # Hex form keeps ids free of the match-id separator
    return uuid4().hex


class Transaction(Base):
    """A user's financial transaction."""

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=_new_id)

    # Ownership
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    account_id: Mapped[str | None] = mapped_column(String(100))

    # Transaction basics
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # income/expense/transfer
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_transactions_user_date", "user_id", "date"),
        Index("idx_transactions_account", "account_id"),
        CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.id} {self.type} {self.amount} {self.date}>"
