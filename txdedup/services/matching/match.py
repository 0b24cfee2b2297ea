"""Duplicate match records and their identifiers."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID

from txdedup.models import Transaction
from txdedup.services.errors import InvalidMatchIdError, InvalidStatusTransitionError

MATCH_ID_SEPARATOR = "-"


class MatchStatus(str, Enum):
    """Lifecycle of a duplicate match."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_MERGED = "auto_merged"


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class MatchKey:
    """Ordered pair of transaction ids identifying a match.

    The wire form joins both ids with ``-``. Ids that themselves contain the
    separator can only be recovered when both are UUIDs; any other
    ambiguous string is rejected.
    """

    original_id: str
    duplicate_id: str

    def __post_init__(self):
        if not self.original_id or not self.duplicate_id:
            raise InvalidMatchIdError("Match id needs two transaction ids")
        if self.original_id == self.duplicate_id:
            raise InvalidMatchIdError("A transaction cannot match itself")

    def __str__(self) -> str:
        return f"{self.original_id}{MATCH_ID_SEPARATOR}{self.duplicate_id}"

    @property
    def ids(self) -> tuple[str, str]:
        return (self.original_id, self.duplicate_id)

    @property
    def pair(self) -> frozenset[str]:
        """Unordered form, equal for A-B and B-A."""
        return frozenset(self.ids)

    def other(self, transaction_id: str) -> str:
        """Return the id paired with ``transaction_id``."""
        if transaction_id == self.original_id:
            return self.duplicate_id
        if transaction_id == self.duplicate_id:
            return self.original_id
        raise InvalidMatchIdError(
            f"Transaction {transaction_id} is not part of match {self}"
        )

    @classmethod
    def parse(cls, match_id: "str | MatchKey") -> "MatchKey":
        """Parse the ``originalId-duplicateId`` wire form.

        Raises:
            InvalidMatchIdError: No separator, empty ids or ambiguous split
        """
        if isinstance(match_id, MatchKey):
            return match_id

        positions = [i for i, ch in enumerate(match_id) if ch == MATCH_ID_SEPARATOR]
        if not positions:
            raise InvalidMatchIdError(f"Invalid match ID format: {match_id!r}")

        if len(positions) > 1:
            positions = [
                i for i in positions if _is_uuid(match_id[:i]) and _is_uuid(match_id[i + 1 :])
            ]
            if len(positions) != 1:
                raise InvalidMatchIdError(f"Ambiguous match ID: {match_id!r}")

        split = positions[0]
        return cls(match_id[:split], match_id[split + 1 :])


@dataclass
class DuplicateMatch:
    """A pair of transactions believed to be the same event."""

    key: MatchKey
    original_transaction: Transaction
    duplicate_transaction: Transaction
    confidence: float
    matching_criteria: list[str] = field(default_factory=list)
    status: MatchStatus = MatchStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def id(self) -> str:
        return str(self.key)

    def resolve(self, status: MatchStatus) -> None:
        """Move a pending match to a terminal status."""
        if status == MatchStatus.PENDING:
            raise InvalidStatusTransitionError("Cannot move a match back to pending")
        if self.status != MatchStatus.PENDING:
            raise InvalidStatusTransitionError(
                f"Match {self.id} already {self.status.value}, cannot become {status.value}"
            )
        self.status = status
