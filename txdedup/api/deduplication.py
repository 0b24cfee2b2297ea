"""Transaction deduplication API endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import AfterValidator, BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from txdedup.database import get_session
from txdedup.models import Transaction, TransactionType
from txdedup.services import DeduplicationResult, DeduplicationService, SQLTransactionStore
from txdedup.services.errors import DeduplicationError, TransactionNotFoundError
from txdedup.services.matching import DuplicateMatch, MatchKey
from txdedup.services.matching.similarity import as_utc

router = APIRouter(prefix="/api/transactions/deduplication", tags=["deduplication"])

# Naive timestamps in request bodies are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class CriteriaRequest(BaseModel):
    """Per-criterion switches; omitted fields keep their default."""

    date: bool | None = None
    amount: bool | None = None
    description: bool | None = None
    location: bool | None = None
    account: bool | None = None


class SettingsRequest(BaseModel):
    """Overrides for the default deduplication settings."""

    date_tolerance_days: float | None = Field(None, ge=0, le=30)
    amount_tolerance_percent: float | None = Field(None, ge=0, le=100)
    description_similarity_threshold: float | None = Field(None, ge=0, le=1)
    auto_merge_threshold: float | None = Field(None, ge=0, le=1)
    enabled_criteria: CriteriaRequest | None = None

    def to_overrides(self) -> dict:
        return self.model_dump(exclude_none=True)


class DetectRangeRequest(BaseModel):
    """Request to detect duplicates in a date range."""

    start_date: UtcDatetime
    end_date: UtcDatetime
    settings: SettingsRequest | None = None


class DetectTransactionRequest(BaseModel):
    """Request to detect duplicates of one transaction."""

    transaction_id: str
    settings: SettingsRequest | None = None


class DraftTransaction(BaseModel):
    """A transaction that has not been created yet."""

    account_id: str | None = None
    type: TransactionType
    amount: Decimal = Field(ge=0)
    description: str = ""
    date: UtcDatetime
    location: str | None = None


class CheckDraftRequest(BaseModel):
    """Request to check a draft transaction for duplicates."""

    transaction: DraftTransaction
    settings: SettingsRequest | None = None


class MatchReference(BaseModel):
    """Identifies a match by wire id or by its two transaction ids."""

    match_id: str | None = Field(None, description="Match ID (format: originalId-duplicateId)")
    original_id: str | None = None
    duplicate_id: str | None = None

    @model_validator(mode="after")
    def check_reference(self) -> "MatchReference":
        if self.match_id is None and (self.original_id is None or self.duplicate_id is None):
            raise ValueError("Provide match_id or both original_id and duplicate_id")
        return self

    def key(self) -> MatchKey:
        if self.match_id is not None:
            return MatchKey.parse(self.match_id)
        return MatchKey(self.original_id, self.duplicate_id)


class ApproveMergeRequest(MatchReference):
    """Request to approve merging a match."""

    keep_transaction_id: str


class RejectMatchRequest(MatchReference):
    """Request to reject a match."""

    pass


class TransactionResponse(BaseModel):
    """Transaction as shown in a match."""

    id: str
    user_id: str
    account_id: str | None
    type: str
    amount: str
    description: str
    date: datetime
    location: str | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, t: Transaction) -> "TransactionResponse":
        return cls(
            id=t.id,
            user_id=t.user_id,
            account_id=t.account_id,
            type=t.type,
            amount=str(t.amount),
            description=t.description,
            date=t.date,
            location=t.location,
            created_at=t.created_at,
        )


class DuplicateMatchResponse(BaseModel):
    """A candidate duplicate pair."""

    id: str
    original_transaction: TransactionResponse
    duplicate_transaction: TransactionResponse
    confidence: float
    matching_criteria: list[str]
    status: str
    created_at: datetime

    @classmethod
    def from_match(cls, match: DuplicateMatch) -> "DuplicateMatchResponse":
        return cls(
            id=match.id,
            original_transaction=TransactionResponse.from_model(match.original_transaction),
            duplicate_transaction=TransactionResponse.from_model(match.duplicate_transaction),
            confidence=match.confidence,
            matching_criteria=match.matching_criteria,
            status=match.status.value,
            created_at=match.created_at,
        )


class DeduplicationResultResponse(BaseModel):
    """Outcome of range detection."""

    duplicates_found: int
    matches: list[DuplicateMatchResponse]
    auto_merged: int
    pending_review: int
    failed_merges: int
    errors: list[str]

    @classmethod
    def from_result(cls, result: DeduplicationResult) -> "DeduplicationResultResponse":
        return cls(
            duplicates_found=result.duplicates_found,
            matches=[DuplicateMatchResponse.from_match(m) for m in result.matches],
            auto_merged=result.auto_merged,
            pending_review=result.pending_review,
            failed_merges=result.failed_merges,
            errors=result.errors,
        )


class ResolutionResponse(BaseModel):
    """Outcome of approving or rejecting a match."""

    success: bool
    message: str


async def get_current_user_id(x_user_id: Annotated[str, Header()]) -> str:
    """Caller identity, set by the authenticating gateway."""
    return x_user_id


async def get_deduplication_service(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeduplicationService:
    return DeduplicationService(SQLTransactionStore(session))


UserId = Annotated[str, Depends(get_current_user_id)]
Service = Annotated[DeduplicationService, Depends(get_deduplication_service)]


def _http_error(error: DeduplicationError) -> HTTPException:
    status_code = 404 if isinstance(error, TransactionNotFoundError) else 400
    return HTTPException(status_code=status_code, detail=str(error))


@router.post("/detect-range", response_model=DeduplicationResultResponse)
async def detect_duplicates_in_range(
    request: DetectRangeRequest,
    user_id: UserId,
    service: Service,
):
    """Detect duplicates in a date range, auto-merging high-confidence matches."""
    try:
        service.validate_range(request.start_date, request.end_date)
        result = await service.detect_duplicates_in_range(
            user_id,
            request.start_date,
            request.end_date,
            request.settings.to_overrides() if request.settings else None,
        )
    except DeduplicationError as e:
        raise _http_error(e) from e

    return DeduplicationResultResponse.from_result(result)


@router.post("/detect-transaction", response_model=list[DuplicateMatchResponse])
async def detect_duplicates_for_transaction(
    request: DetectTransactionRequest,
    user_id: UserId,
    service: Service,
):
    """Find potential duplicates of one transaction. Nothing is merged."""
    try:
        matches = await service.detect_duplicates_for_transaction(
            request.transaction_id,
            user_id,
            request.settings.to_overrides() if request.settings else None,
        )
    except DeduplicationError as e:
        raise _http_error(e) from e

    return [DuplicateMatchResponse.from_match(m) for m in matches]


@router.post("/check-draft", response_model=list[DuplicateMatchResponse])
async def check_draft_for_duplicates(
    request: CheckDraftRequest,
    user_id: UserId,
    service: Service,
):
    """Find stored duplicates of a transaction before it is created."""
    draft = Transaction(**request.transaction.model_dump(mode="python"))
    draft.type = request.transaction.type.value
    try:
        matches = await service.preview_duplicates(
            draft,
            user_id,
            request.settings.to_overrides() if request.settings else None,
        )
    except DeduplicationError as e:
        raise _http_error(e) from e

    return [DuplicateMatchResponse.from_match(m) for m in matches]


@router.post("/approve-merge", response_model=ResolutionResponse)
async def approve_duplicate_merge(
    request: ApproveMergeRequest,
    user_id: UserId,
    service: Service,
):
    """Merge a match, keeping the chosen transaction and deleting the other."""
    try:
        await service.approve_duplicate_merge(request.key(), user_id, request.keep_transaction_id)
    except DeduplicationError as e:
        raise _http_error(e) from e

    return ResolutionResponse(success=True, message="Duplicate merge approved successfully")


@router.post("/reject-match", response_model=ResolutionResponse)
async def reject_duplicate_match(
    request: RejectMatchRequest,
    user_id: UserId,
    service: Service,
):
    """Mark a match as not a duplicate."""
    try:
        await service.reject_duplicate_match(request.key(), user_id)
    except DeduplicationError as e:
        raise _http_error(e) from e

    return ResolutionResponse(success=True, message="Duplicate match rejected successfully")
