"""Exceptions raised by the deduplication engine."""


class DeduplicationError(Exception):
    """Base exception for deduplication errors."""

    pass


class TransactionNotFoundError(DeduplicationError):
    """Referenced transaction does not exist or belongs to another user."""

    pass


class InvalidMatchIdError(DeduplicationError):
    """Match id is malformed or the kept id is not part of the pair."""

    pass


class InvalidDateRangeError(DeduplicationError):
    """Detection range is empty, inverted or too long."""

    pass


class InvalidSettingsError(DeduplicationError):
    """Deduplication settings are out of range."""

    pass


class InvalidStatusTransitionError(DeduplicationError):
    """A resolved match cannot change status again."""

    pass
