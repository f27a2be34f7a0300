"""
Regeneration schemas.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from card_engine.models.card import truncate_title
from card_engine.models.enums import CardType, ComparisonVersion, RegenerationMode, RegenerationState
from card_engine.schemas.card import CamelModel


class GeneratedCard(BaseModel):
    """Card fields produced by a generation backend from a snippet."""
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    type: CardType = CardType.CONCEPT
    category: str = "General"
    tags: List[str] = []
    model_name: Optional[str] = None

    class Config:
        protected_namespaces = ()

    @field_validator('type', mode='before')
    @classmethod
    def default_unknown_type(cls, v):
        """Backends occasionally invent types; anything unknown becomes concept."""
        try:
            return CardType(v)
        except ValueError:
            return CardType.CONCEPT

    @field_validator('tags', mode='before')
    @classmethod
    def wrap_single_tag(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v):
        return v or "General"

    @field_validator('title')
    @classmethod
    def clip_title(cls, v):
        return truncate_title(v)


class AIStatus(BaseModel):
    """Availability of the AI generation backend."""
    provider: Optional[str] = None
    model: Optional[str] = None
    available: bool = False
    error: Optional[str] = None


class RegenerateRequest(BaseModel):
    """Request schema for POST /cards/{id}/regenerate."""
    use_ai: bool = Field(False, alias="useAI")
    comparison_mode: bool = Field(False, alias="comparisonMode")
    selected_version: Optional[ComparisonVersion] = Field(None, alias="selectedVersion")
    comparison_data: Optional[Dict[str, Any]] = Field(None, alias="comparisonData")

    class Config:
        populate_by_name = True


class ComparisonResponse(CamelModel):
    """Both regeneration variants, returned before anything is applied."""
    comparison: bool = True
    attempt_id: str
    rule_based: Optional[GeneratedCard] = None
    ai: Optional[GeneratedCard] = None
    rule_based_error: Optional[str] = None
    ai_error: Optional[str] = None


class RegenerationStatusResponse(CamelModel):
    """Current regeneration attempt for a card, if any."""
    state: RegenerationState
    mode: Optional[RegenerationMode] = None
    attempt_id: Optional[str] = None
    rule_based: Optional[GeneratedCard] = None
    ai: Optional[GeneratedCard] = None
    rule_based_error: Optional[str] = None
    ai_error: Optional[str] = None
    started_at: Optional[datetime] = None


class CancelRegenerationResponse(BaseModel):
    cancelled: bool
