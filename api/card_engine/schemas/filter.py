"""
Filter configuration schema for card listing and counting.
"""
from pydantic import BaseModel
from typing import Optional
from datetime import date
from card_engine.models.enums import CardType


class CardFilterConfig(BaseModel):
    """Filter configuration for card queries.

    The same config drives both the card list and the card count so the two
    can never disagree on which rows match.
    """
    type: Optional[CardType] = None
    category: Optional[str] = None
    search: Optional[str] = None  # Substring of title, content or any tag (case-insensitive)
    source: Optional[str] = None  # Substring of the source label
    source_file_type: Optional[str] = None  # Attachment filename extension, e.g. "pdf"
    date_from: Optional[date] = None  # Inclusive, start of day
    date_to: Optional[date] = None  # Inclusive, end of day

    class Config:
        """Pydantic config."""
        json_schema_extra = {
            "example": {
                "type": "concept",
                "category": "Policy",
                "search": "review",
                "source": "policy",
                "source_file_type": "pdf",
                "date_from": "2024-01-01",
                "date_to": "2024-12-31"
            }
        }


class CardListOptions(BaseModel):
    """Sorting and paging options for card queries."""
    sort_by: str = "createdAt"  # Options: title, type, category, source, generatedBy, createdAt
    sort_order: str = "desc"  # Options: asc, desc
    limit: Optional[int] = None  # None = no limit
    skip: int = 0
