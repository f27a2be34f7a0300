"""
Ingestion schemas - payloads produced by the upload/extraction pipeline.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Union
from card_engine.models.card import truncate_title
from card_engine.models.enums import CardType, GeneratedBy
from card_engine.schemas.card import CamelModel, CardResponse, Provenance


class CandidateCard(CamelModel):
    """A raw card extracted from an uploaded file."""
    title: str
    content: str
    type: CardType = CardType.CONCEPT
    category: Optional[str] = None
    tags: List[str] = []
    generated_by: Optional[GeneratedBy] = None
    provenance: Optional[Provenance] = None

    @field_validator('type', mode='before')
    @classmethod
    def default_unknown_type(cls, v):
        """Unknown or empty card types fall back to concept."""
        if not v:
            return CardType.CONCEPT
        try:
            return CardType(v)
        except ValueError:
            return CardType.CONCEPT

    @field_validator('title')
    @classmethod
    def clip_title(cls, v):
        return truncate_title(v)


class FileDescriptor(CamelModel):
    """The uploaded file a candidate card was extracted from."""
    filename: str  # Stored filename (unique per upload)
    original_name: str  # Name the user uploaded
    mimetype: str = "application/octet-stream"
    size: int = 0
    path: Optional[str] = None
    file_hash: Optional[str] = None


class ProcessedItemRequest(CamelModel):
    """Request schema for ingesting a single extracted card."""
    card: CandidateCard
    file: FileDescriptor
    file_hash: Optional[str] = None
    file_id: Optional[str] = None


class IngestionResult(CamelModel):
    """Outcome of ingesting one candidate card."""
    card: CardResponse
    is_duplicate: bool


class ProcessedItem(BaseModel):
    """One item in a processed-file batch (fields are loose, checked by the service)."""
    title: Optional[str] = None
    content: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    provenance: Optional[dict] = None


class ProcessedFileRequest(BaseModel):
    """Request schema for ingesting every card extracted from one file."""
    filePath: Optional[str] = None
    originalName: Optional[str] = None
    filename: Optional[str] = None
    size: int = 0
    mimetype: Optional[str] = None
    items: Optional[List[ProcessedItem]] = None
    category: Optional[str] = None
    tags: Optional[Union[str, List[str]]] = None
    model_name: Optional[str] = None
    prompt_version: Optional[str] = None
    confidence_score: Optional[float] = Field(None, ge=0, le=1)

    class Config:
        protected_namespaces = ()


class ProcessedFileDetails(BaseModel):
    created: int
    updated: int
    skipped: int
    failed: int


class ProcessedFileInfo(CamelModel):
    filename: str
    original_name: str
    size: int


class ProcessedFileResponse(BaseModel):
    """Response schema for batch ingestion."""
    message: str
    details: ProcessedFileDetails
    cards: List[CardResponse]
    file: ProcessedFileInfo
