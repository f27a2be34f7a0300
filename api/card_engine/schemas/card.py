"""
Card schemas.

JSON bodies use camelCase keys (cardId, generatedBy, ...). Provenance keeps
its snake_case keys, which are part of the stored record.
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional
from datetime import datetime
from card_engine.models.card import as_utc
from card_engine.models.enums import CardType, GeneratedBy


class CamelModel(BaseModel):
    """Base for schemas exchanged with the client in camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Attachment(CamelModel):
    """A file associated with a card."""
    filename: str
    original_name: Optional[str] = None
    mimetype: Optional[str] = None
    size: int = 0
    path: Optional[str] = None


class Provenance(BaseModel):
    """Structured evidence of where a card's content came from."""
    source_file_id: Optional[str] = None
    source_path: Optional[str] = None
    file_hash: Optional[str] = None
    location: Optional[str] = None  # e.g. "page 3" or a byte offset
    snippet: Optional[str] = None  # Verbatim excerpt used to (re)generate the card
    model_name: Optional[str] = None
    prompt_version: Optional[str] = None
    confidence_score: Optional[float] = Field(None, ge=0, le=1)

    class Config:
        protected_namespaces = ()


class CardMetadata(CamelModel):
    """Review metadata."""
    rating: Optional[int] = None
    review_count: int = 0
    last_reviewed: Optional[datetime] = None


class CardResponse(CamelModel):
    """Card response schema."""
    id: str
    card_id: str
    owner_id: str
    title: str
    content: str
    content_hash: Optional[str] = None
    type: CardType = CardType.CONCEPT
    category: str
    tags: List[str] = []
    source: str = ""
    is_public: bool = False
    generated_by: GeneratedBy = GeneratedBy.RULE_BASED
    provenance: Optional[Provenance] = None
    attachments: List[Attachment] = []
    metadata: CardMetadata = CardMetadata()
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_card(cls, card) -> "CardResponse":
        return cls(
            id=card.id,
            card_id=card.card_id,
            owner_id=card.owner_id,
            title=card.title,
            content=card.content,
            content_hash=card.content_hash,
            type=card.type,
            category=card.category,
            tags=card.tags or [],
            source=card.source or "",
            is_public=card.is_public,
            generated_by=card.generated_by,
            provenance=Provenance.model_validate(card.provenance) if card.provenance else None,
            attachments=[Attachment.model_validate(a) for a in card.attachments or []],
            metadata=CardMetadata.model_validate(card.card_metadata or {}),
            version=card.version,
            created_at=as_utc(card.created_at),
            updated_at=as_utc(card.updated_at),
        )


class CreateCardRequest(CamelModel):
    """Request schema for manually creating a card.

    title/content/category are checked by the service so that a missing value
    is reported as 400 like every other validation failure.
    """
    title: Optional[str] = None
    content: Optional[str] = None
    type: CardType = CardType.CONCEPT
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    source: Optional[str] = None
    is_public: bool = False
    provenance: Optional[Provenance] = None
    generated_by: Optional[GeneratedBy] = None


class UpdateCardRequest(CamelModel):
    """Request schema for a partial card update. Only provided fields change."""
    title: Optional[str] = None
    content: Optional[str] = None
    type: Optional[CardType] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    source: Optional[str] = None
    is_public: Optional[bool] = None
    provenance: Optional[Provenance] = None


class RateCardRequest(CamelModel):
    """Request schema for rating a card. The value is checked by the service (400 on bad input)."""
    rating: Any = None


class PaginationResponse(CamelModel):
    """Pagination envelope."""
    current: int
    total: int  # Number of pages
    total_count: int
    has_next: bool
    has_prev: bool


class CardsResponse(CamelModel):
    """Response schema for the card list."""
    cards: List[CardResponse]
    pagination: PaginationResponse


class CardCountResponse(BaseModel):
    """Response schema for card count."""
    count: int


class DeleteCardResponse(BaseModel):
    message: str
    id: str
