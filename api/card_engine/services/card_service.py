"""
Card service for business logic related to user-facing card operations.
"""
import logging
import math
from typing import List, Optional, Tuple

from card_engine.core.config import settings
from card_engine.core.exceptions import ValidationError
from card_engine.models.card import MAX_TITLE_LENGTH, Card, utcnow
from card_engine.models.enums import GeneratedBy
from card_engine.schemas.card import CreateCardRequest, PaginationResponse, UpdateCardRequest
from card_engine.schemas.filter import CardFilterConfig, CardListOptions
from card_engine.services.card_store import CardStore
from card_engine.services.fingerprint_service import fingerprint
from card_engine.services.merge_service import overlay_provenance

logger = logging.getLogger(__name__)


def list_cards(
    store: CardStore,
    owner_id: str,
    filters: CardFilterConfig,
    page: int = 1,
    limit: Optional[int] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> Tuple[List[Card], PaginationResponse]:
    """
    Get one page of the owner's cards together with the pagination envelope.

    Args:
        store: Card store
        owner_id: Owner of the cards
        filters: Filters shared with the count
        page: 1-based page number (values below 1 are treated as 1)
        limit: Page size, clamped to 1..page_size_max
        sort_by: Sort column
        sort_order: asc or desc

    Returns:
        Tuple of (cards, pagination)
    """
    page_num = max(1, page or 1)
    limit_num = min(settings.page_size_max, max(1, limit or settings.page_size_default))
    options = CardListOptions(
        sort_by=sort_by,
        sort_order=sort_order,
        limit=limit_num,
        skip=(page_num - 1) * limit_num,
    )

    cards = store.find_by_owner(owner_id, filters, options)
    total = store.count_by_owner(owner_id, filters)
    total_pages = math.ceil(total / limit_num) if limit_num > 0 else 0

    return cards, PaginationResponse(
        current=page_num,
        total=total_pages,
        total_count=total,
        has_next=page_num * limit_num < total,
        has_prev=page_num > 1,
    )


def validate_title_length(title: str) -> None:
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")


def create_manual_card(store: CardStore, owner_id: str, request: CreateCardRequest) -> Card:
    """
    Create a card typed in by the user.

    Manual cards bypass duplicate merging. The card claims its fingerprint
    only if no other card of the owner holds it, so both rows stay legal.
    """
    title = (request.title or "").strip()
    content = (request.content or "").strip()
    category = (request.category or "").strip()
    if not title or not content or not category:
        raise ValidationError("Title, content, and category are required")
    validate_title_length(title)

    fingerprinted = store.find_duplicate(fingerprint(title, content), owner_id) is None
    if not fingerprinted:
        logger.info(f"Manual card for owner {owner_id} duplicates an existing card; storing without fingerprint")

    provenance = request.provenance.model_dump(exclude_none=True) if request.provenance else None
    card = Card(
        owner_id=owner_id,
        title=title,
        content=content,
        type=request.type,
        category=category,
        tags=list(request.tags or []),
        source=request.source or "",
        is_public=request.is_public,
        generated_by=GeneratedBy.AI if request.generated_by == GeneratedBy.AI else GeneratedBy.RULE_BASED,
        provenance=provenance or None,
    )
    return store.create(card, fingerprinted=fingerprinted)


def update_card(store: CardStore, card: Card, request: UpdateCardRequest) -> Card:
    """Apply a user edit. Only provided fields change."""
    patch = request.model_dump(exclude_unset=True, exclude={"provenance"})
    for key in ("title", "content", "category"):
        if key in patch:
            if patch[key] is None or not patch[key].strip():
                raise ValidationError(f"{key.capitalize()} cannot be empty")
            patch[key] = patch[key].strip()
    if "title" in patch:
        validate_title_length(patch["title"])
    if "tags" in patch and patch["tags"] is None:
        patch["tags"] = []
    for key in ("type", "is_public", "source"):
        if key in patch and patch[key] is None:
            del patch[key]

    if request.provenance is not None:
        patch["provenance"] = overlay_provenance(
            card.provenance, request.provenance.model_dump(exclude_unset=True)
        )

    if not patch:
        return card
    return store.update(card, patch)


def review_card(store: CardStore, card: Card) -> Card:
    """Record a review: bump reviewCount and stamp lastReviewed."""
    metadata = dict(card.card_metadata or {})
    metadata["reviewCount"] = int(metadata.get("reviewCount") or 0) + 1
    metadata["lastReviewed"] = utcnow().isoformat()
    return store.update(card, {"card_metadata": metadata}, expected_version=card.version)


def rate_card(store: CardStore, card: Card, rating) -> Card:
    """Set the card rating (1..5). Accepts whole numbers only, as int or float."""
    if rating is None or isinstance(rating, bool) or not isinstance(rating, (int, float)):
        raise ValidationError("Rating must be between 1 and 5")
    if not math.isfinite(rating) or rating < 1 or rating > 5 or int(rating) != rating:
        raise ValidationError("Rating must be between 1 and 5")
    metadata = dict(card.card_metadata or {})
    metadata["rating"] = int(rating)
    return store.update(card, {"card_metadata": metadata}, expected_version=card.version)
