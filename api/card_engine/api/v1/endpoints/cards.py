"""
Card CRUD, ingestion and regeneration endpoints.
"""
from fastapi import APIRouter, Depends, Response, status
from typing import List, Optional, Union
import logging

from card_engine.api.v1.dependencies import (
    get_ai_status_service,
    get_card_filters,
    get_card_store,
    get_ingestion_service,
    get_regeneration_coordinator,
)
from card_engine.core.config import settings
from card_engine.core.identity import AuthenticatedRequest, get_authenticated_request
from card_engine.models.enums import CardType, RegenerationState
from card_engine.schemas.card import (
    CardCountResponse,
    CardResponse,
    CardsResponse,
    CreateCardRequest,
    DeleteCardResponse,
    RateCardRequest,
    UpdateCardRequest,
)
from card_engine.schemas.filter import CardFilterConfig, CardListOptions
from card_engine.schemas.ingestion import (
    ProcessedFileDetails,
    ProcessedFileInfo,
    ProcessedFileRequest,
    ProcessedFileResponse,
    IngestionResult,
    ProcessedItemRequest,
)
from card_engine.schemas.regeneration import (
    AIStatus,
    CancelRegenerationResponse,
    ComparisonResponse,
    RegenerateRequest,
    RegenerationStatusResponse,
)
from card_engine.services.card_service import (
    create_manual_card,
    list_cards,
    rate_card,
    review_card,
    update_card,
)
from card_engine.services.card_store import CardStore
from card_engine.services.generation_service import AIStatusService
from card_engine.services.ingestion_service import IngestionService
from card_engine.services.regeneration_service import RegenerationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards", tags=["cards"])


@router.get("", response_model=CardsResponse)
def get_cards(
    page: int = 1,
    limit: Optional[int] = None,
    sortBy: str = "createdAt",
    sortOrder: str = "desc",
    filters: CardFilterConfig = Depends(get_card_filters),
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """
    Get the caller's cards with filtering, sorting and pagination.

    Query parameters:
        type, category, search, source, sourceFileType, dateFrom, dateTo:
            filters (same semantics as /cards/count)
        sortBy: title, type, category, source, generatedBy or createdAt (default)
        sortOrder: asc or desc (default)
        page: 1-based page number
        limit: page size (default 20, max 1000)
    """
    cards, pagination = list_cards(
        store,
        auth.owner_id,
        filters,
        page=page,
        limit=limit,
        sort_by=sortBy,
        sort_order=sortOrder,
    )
    return CardsResponse(
        cards=[CardResponse.from_card(card) for card in cards],
        pagination=pagination,
    )


@router.get("/count", response_model=CardCountResponse)
def get_cards_count(
    filters: CardFilterConfig = Depends(get_card_filters),
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """Count the caller's cards matching the same filters as the card list."""
    return CardCountResponse(count=store.count_by_owner(auth.owner_id, filters))


@router.get("/ai-status", response_model=AIStatus)
def get_ai_status(
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    ai_status: AIStatusService = Depends(get_ai_status_service),
):
    """Report whether AI regeneration is available and with which provider/model."""
    return ai_status.get_status()


@router.get("/category/{category}", response_model=List[CardResponse])
def get_cards_by_category(
    category: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    cards = store.find_by_owner(
        auth.owner_id,
        CardFilterConfig(category=category),
        CardListOptions(limit=settings.page_size_max),
    )
    return [CardResponse.from_card(card) for card in cards]


@router.get("/type/{card_type}", response_model=List[CardResponse])
def get_cards_by_type(
    card_type: CardType,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    cards = store.find_by_owner(
        auth.owner_id,
        CardFilterConfig(type=card_type),
        CardListOptions(limit=settings.page_size_max),
    )
    return [CardResponse.from_card(card) for card in cards]


@router.post("/from-processed-file", response_model=ProcessedFileResponse, status_code=status.HTTP_201_CREATED)
def create_cards_from_processed_file(
    request: ProcessedFileRequest,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Create or merge cards for every item extracted from one uploaded file.

    Called by the upload pipeline after text extraction. Items whose text
    matches an existing card of the caller are merged into it instead of
    creating a duplicate.
    """
    outcome, file = ingestion.ingest_processed_file(request, auth.owner_id)
    total_processed = len(outcome.created) + len(outcome.updated)
    return ProcessedFileResponse(
        message=f"Successfully processed {total_processed} cards",
        details=ProcessedFileDetails(
            created=len(outcome.created),
            updated=len(outcome.updated),
            skipped=outcome.skipped,
            failed=outcome.failed,
        ),
        cards=[CardResponse.from_card(card) for card in outcome.created + outcome.updated],
        file=ProcessedFileInfo(filename=file.filename, original_name=file.original_name, size=file.size),
    )


@router.post("/from-processed-item", response_model=IngestionResult)
def create_or_update_from_processed_item(
    request: ProcessedItemRequest,
    response: Response,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Create a card from one extracted item, or merge it into the caller's
    existing card with the same text.

    Returns 201 when a card was created and 200 when it was merged.
    """
    outcome = ingestion.create_or_update_from_processed_item(
        request.card,
        auth.owner_id,
        request.file,
        file_hash=request.file_hash,
        file_id=request.file_id,
    )
    if not outcome.is_duplicate:
        response.status_code = status.HTTP_201_CREATED
    return IngestionResult(card=CardResponse.from_card(outcome.card), is_duplicate=outcome.is_duplicate)


@router.post("", response_model=CardResponse, status_code=status.HTTP_201_CREATED)
def create_card(
    request: CreateCardRequest,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """Create a card manually. Title, content and category are required."""
    card = create_manual_card(store, auth.owner_id, request)
    return CardResponse.from_card(card)


@router.get("/{card_id}", response_model=CardResponse)
def get_card(
    card_id: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """
    Get a card by internal id or by its 6-character public id.

    Public cards can be read by anyone who knows their public id.
    """
    return CardResponse.from_card(store.find_one_by_owner(card_id, auth.owner_id))


@router.put("/{card_id}", response_model=CardResponse)
def put_card(
    card_id: str,
    request: UpdateCardRequest,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """Update a card. Only provided fields change."""
    card = store.find_owned(card_id, auth.owner_id)
    return CardResponse.from_card(update_card(store, card, request))


@router.delete("/{card_id}", response_model=DeleteCardResponse)
def delete_card(
    card_id: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
    coordinator: RegenerationCoordinator = Depends(get_regeneration_coordinator),
):
    """Delete an owned card and drop any pending regeneration for it."""
    deleted_id = store.delete(card_id, auth.owner_id)
    coordinator.cancel(deleted_id, auth.owner_id)
    return DeleteCardResponse(message="Card deleted successfully", id=deleted_id)


@router.patch("/{card_id}/review", response_model=CardResponse)
def patch_card_review(
    card_id: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """Record that the caller reviewed the card."""
    card = store.find_owned(card_id, auth.owner_id)
    return CardResponse.from_card(review_card(store, card))


@router.patch("/{card_id}/rate", response_model=CardResponse)
def patch_card_rating(
    card_id: str,
    request: RateCardRequest,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
):
    """Rate the card from 1 to 5."""
    card = store.find_owned(card_id, auth.owner_id)
    return CardResponse.from_card(rate_card(store, card, request.rating))


@router.post("/{card_id}/regenerate", response_model=Union[CardResponse, ComparisonResponse])
def regenerate_card(
    card_id: str,
    request: RegenerateRequest,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
    coordinator: RegenerationCoordinator = Depends(get_regeneration_coordinator),
):
    """
    Regenerate a card from its stored snippet.

    - {} or {useAI: false}: rule-based regeneration, applied immediately
    - {useAI: true}: AI regeneration, applied immediately
    - {comparisonMode: true}: run both and return them without applying
    - {selectedVersion: "ruleBased" | "ai", comparisonData?: {attemptId}}:
      apply one side of the pending comparison
    """
    card = store.find_owned(card_id, auth.owner_id)

    if request.selected_version is not None:
        attempt_id = (request.comparison_data or {}).get("attemptId")
        updated = coordinator.apply_comparison(store, card, request.selected_version, attempt_id)
        return CardResponse.from_card(updated)

    if request.comparison_mode:
        attempt = coordinator.start_comparison(store, card)
        return ComparisonResponse(
            attempt_id=attempt.attempt_id,
            rule_based=attempt.rule_based_result,
            ai=attempt.ai_result,
            rule_based_error=attempt.rule_based_error,
            ai_error=attempt.ai_error,
        )

    if request.use_ai:
        return CardResponse.from_card(coordinator.regenerate_ai(store, card))
    return CardResponse.from_card(coordinator.regenerate_rule_based(store, card))


@router.get("/{card_id}/regenerate", response_model=RegenerationStatusResponse)
def get_regeneration_status(
    card_id: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
    coordinator: RegenerationCoordinator = Depends(get_regeneration_coordinator),
):
    """Get the card's pending regeneration attempt, if any."""
    card = store.find_owned(card_id, auth.owner_id)
    attempt = coordinator.get_attempt(card.id)
    if attempt is None:
        return RegenerationStatusResponse(state=RegenerationState.IDLE)
    return RegenerationStatusResponse(
        state=attempt.state,
        mode=attempt.mode,
        attempt_id=attempt.attempt_id,
        rule_based=attempt.rule_based_result,
        ai=attempt.ai_result,
        rule_based_error=attempt.rule_based_error,
        ai_error=attempt.ai_error,
        started_at=attempt.started_at,
    )


@router.delete("/{card_id}/regenerate", response_model=CancelRegenerationResponse)
def cancel_regeneration(
    card_id: str,
    auth: AuthenticatedRequest = Depends(get_authenticated_request),
    store: CardStore = Depends(get_card_store),
    coordinator: RegenerationCoordinator = Depends(get_regeneration_coordinator),
):
    """Discard the pending comparison without changing the card."""
    card = store.find_owned(card_id, auth.owner_id)
    return CancelRegenerationResponse(cancelled=coordinator.cancel(card.id, auth.owner_id))
