"""Services for transaction deduplication."""

from .decisions import DecisionSink, LoggingDecisionSink, MergeDecision
from .deduplication import DeduplicationResult, DeduplicationService
from .merge import MergeExecutor
from .scheduler import DeduplicationScheduler
from .store import SQLTransactionStore, TransactionStore

__all__ = [
    "DeduplicationService",
    "DeduplicationResult",
    "MergeExecutor",
    "DecisionSink",
    "LoggingDecisionSink",
    "MergeDecision",
    "DeduplicationScheduler",
    "SQLTransactionStore",
    "TransactionStore",
]
