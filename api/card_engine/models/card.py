"""
Card model.
"""
from sqlmodel import SQLModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from uuid import uuid4
from sqlalchemy import Column, DateTime, JSON, String as SAString, UniqueConstraint
from card_engine.models.enums import CardType, GeneratedBy


MAX_TITLE_LENGTH = 200


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a timestamp read back without zone (SQLite drops it)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def truncate_title(title: str) -> str:
    """Clip a machine-produced title to the column limit, marking the cut with "..."."""
    if title is None or len(title) <= MAX_TITLE_LENGTH:
        return title
    return title[:MAX_TITLE_LENGTH - 3] + "..."


def default_metadata() -> dict:
    return {"rating": None, "reviewCount": 0, "lastReviewed": None}


class Card(SQLModel, table=True):
    """Card table - one extracted or curated unit of knowledge owned by a user."""
    __tablename__ = "cards"
    # At most one row per (owner, fingerprint). Rows without a fingerprint
    # (manual cards whose text was already taken) are not constrained.
    __table_args__ = (
        UniqueConstraint("owner_id", "content_hash", name="uq_cards_owner_content_hash"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True, max_length=36)
    card_id: Optional[str] = Field(default=None, sa_column=Column(SAString(6), unique=True, index=True, nullable=False))  # Public id, upper-case; assigned by the store
    owner_id: str = Field(index=True)
    title: str = Field(max_length=MAX_TITLE_LENGTH)
    content: str
    content_hash: Optional[str] = Field(default=None, index=True)  # Fingerprint of normalized title + content
    type: CardType = Field(
        default=CardType.CONCEPT,
        sa_column=Column(SAString, default=CardType.CONCEPT.value, nullable=False)
    )  # stored as string, converted to enum
    category: str
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    source: str = ""  # Comma-joined list of originating filenames
    is_public: bool = Field(default=False)
    generated_by: GeneratedBy = Field(
        default=GeneratedBy.RULE_BASED,
        sa_column=Column(SAString, default=GeneratedBy.RULE_BASED.value, nullable=False)
    )
    provenance: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    attachments: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    card_metadata: dict = Field(default_factory=default_metadata, sa_column=Column("metadata", JSON, nullable=False))
    version: int = Field(default=1)  # Bumped on every write; compare-and-swap key
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    updated_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
