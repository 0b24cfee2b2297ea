"""Database models."""

from .transaction import Base, Transaction, TransactionType

__all__ = ["Base", "Transaction", "TransactionType"]
