"""Recording of merge/review decisions."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from txdedup.services.matching.match import DuplicateMatch

logger = logging.getLogger(__name__)


class DecisionAction(str, Enum):
    """What happened to a match."""

    AUTO_MERGED = "auto_merged"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class MergeDecision:
    """A resolved duplicate match, as handed to a decision sink."""

    match_id: str
    user_id: str
    action: DecisionAction
    kept_id: str
    removed_id: str | None
    confidence: float
    matching_criteria: list[str] = field(default_factory=list)
    decided_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_match(
        cls,
        match: DuplicateMatch,
        user_id: str,
        action: DecisionAction,
        kept_id: str,
        removed_id: str | None = None,
    ) -> "MergeDecision":
        return cls(
            match_id=match.id,
            user_id=user_id,
            action=action,
            kept_id=kept_id,
            removed_id=removed_id,
            confidence=match.confidence,
            matching_criteria=list(match.matching_criteria),
        )


class DecisionSink(Protocol):
    """Receives every auto-merge, approval and rejection.

    A future learning component can implement this to adjust matching from
    user decisions without changes to the scorer.
    """

    async def record(self, decision: MergeDecision) -> None: ...


class LoggingDecisionSink:
    """Decision sink that only writes decisions to the log."""

    async def record(self, decision: MergeDecision) -> None:
        removed = f", removed {decision.removed_id}" if decision.removed_id else ""
        logger.info(
            f"Duplicate decision {decision.action.value} for match {decision.match_id} "
            f"(user {decision.user_id}, confidence {decision.confidence:.3f}): "
            f"kept {decision.kept_id}{removed}"
        )
        logger.debug(f"Matching criteria for {decision.match_id}: {decision.matching_criteria}")


async def record_decision(sink: DecisionSink | None, decision: MergeDecision) -> None:
    """Hand a decision to a sink; sink failures are logged, never raised."""
    if sink is None:
        return
    try:
        await sink.record(decision)
    except Exception as e:
        logger.warning(f"Decision sink failed for {decision.match_id}: {e}")
