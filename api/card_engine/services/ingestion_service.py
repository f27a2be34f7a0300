"""
Ingestion service - turns extracted candidate cards into persisted cards.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from card_engine.core.config import settings
from card_engine.core.exceptions import (
    ConflictError,
    DuplicateContentError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from card_engine.models.card import Card
from card_engine.models.enums import GeneratedBy
from card_engine.schemas.ingestion import CandidateCard, FileDescriptor, ProcessedFileRequest
from card_engine.services.card_store import CardStore
from card_engine.services.fingerprint_service import fingerprint, generate_file_hash
from card_engine.services.merge_service import (
    append_attachment,
    attachment_from_file,
    build_provenance,
    merge_provenance,
    merge_source_label,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
MIN_CONTENT_LENGTH = 10
PLACEHOLDER_TEXTS = {"no content", "n/a", "na", "none", "null"}
MERGE_MAX_ATTEMPTS = 3


@dataclass
class IngestionOutcome:
    card: Card
    is_duplicate: bool


@dataclass
class BatchOutcome:
    created: List[Card]
    updated: List[Card]
    skipped: int
    failed: int


class IngestionService:
    """
    Create-or-merge entry point for candidate cards coming from uploads.

    A candidate whose fingerprint is new for the owner becomes a new card.
    A known fingerprint is merged into the existing card: the attachment is
    appended, the file name is added to the source label and provenance is
    filled in only if the card had none. Either way exactly one row is
    written.
    """

    def __init__(
        self,
        store: CardStore,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.max_retries = max_retries if max_retries is not None else settings.ingestion_max_retries
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.ingestion_retry_backoff_seconds
        self._sleep = sleep

    def create_or_update_from_processed_item(
        self,
        candidate: CandidateCard,
        owner_id: str,
        file: FileDescriptor,
        file_hash: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> IngestionOutcome:
        """
        Ingest one candidate card.

        Transient storage failures are retried; a retry recomputes the same
        fingerprint, so a write that landed before the failure resolves to a
        merge.

        Raises:
            ValidationError: If the owner id is missing
            TransientStorageError: If storage stays unavailable after retries
        """
        if not owner_id or not str(owner_id).strip():
            raise ValidationError("Owner id is required to ingest a card")

        for attempt in range(self.max_retries + 1):
            try:
                return self._ingest_once(candidate, owner_id, file, file_hash, file_id)
            except TransientStorageError:
                if attempt == self.max_retries:
                    raise
                wait = self.retry_backoff * (2 ** attempt)
                logger.warning(
                    f"Transient storage error ingesting '{candidate.title}', retrying in {wait:.2f}s"
                )
                self._sleep(wait)

    def _ingest_once(
        self,
        candidate: CandidateCard,
        owner_id: str,
        file: FileDescriptor,
        file_hash: Optional[str],
        file_id: Optional[str],
    ) -> IngestionOutcome:
        content_hash = fingerprint(candidate.title, candidate.content)
        provenance = build_provenance(candidate, file, file_hash, file_id)

        existing = self.store.find_duplicate(content_hash, owner_id)
        if existing is not None:
            return IngestionOutcome(self._merge(existing, file, provenance), is_duplicate=True)

        card = Card(
            owner_id=owner_id,
            title=candidate.title,
            content=candidate.content,
            content_hash=content_hash,
            type=candidate.type,
            category=candidate.category or DEFAULT_CATEGORY,
            tags=list(candidate.tags or []),
            source=file.original_name,
            generated_by=GeneratedBy.AI if candidate.generated_by == GeneratedBy.AI else GeneratedBy.RULE_BASED,
            attachments=[attachment_from_file(file)],
            provenance=provenance,
        )
        try:
            created = self.store.create(card)
        except DuplicateContentError as e:
            return self._merge_after_lost_race(e, owner_id, content_hash, file, provenance)

        logger.info(f"Ingested new card {created.id} from '{file.original_name}'")
        return IngestionOutcome(created, is_duplicate=False)

    def _merge_after_lost_race(
        self,
        error: DuplicateContentError,
        owner_id: str,
        content_hash: str,
        file: FileDescriptor,
        provenance: dict,
    ) -> IngestionOutcome:
        """
        A concurrent ingestion created the same card between our duplicate
        check and our insert. The unique (owner_id, content_hash) constraint
        rejected our row; merge into the winner instead.
        """
        logger.warning(
            f"Lost create race for fingerprint {content_hash[:12]} (owner {owner_id}), merging into {error.existing_card_id}"
        )
        existing = self.store.find_duplicate(content_hash, owner_id)
        if existing is None:
            raise NotFoundError("Duplicate card disappeared while merging") from error
        return IngestionOutcome(self._merge(existing, file, provenance), is_duplicate=True)

    def _merge(self, card: Card, file: FileDescriptor, provenance: dict) -> Card:
        """Merge one ingestion into an existing card with a version-checked write."""
        for attempt in range(MERGE_MAX_ATTEMPTS):
            patch = {}
            attachments = append_attachment(card.attachments, attachment_from_file(file))
            if attachments is not None:
                patch["attachments"] = attachments
            source = merge_source_label(card.source, file.original_name)
            if source is not None:
                patch["source"] = source
            merged_provenance = merge_provenance(card.provenance, provenance)
            if merged_provenance is not None:
                patch["provenance"] = merged_provenance

            if not patch:
                logger.info(f"Re-ingestion of '{file.original_name}' left card {card.id} unchanged")
                return card

            try:
                updated = self.store.update(card, patch, expected_version=card.version)
            except ConflictError:
                if attempt == MERGE_MAX_ATTEMPTS - 1:
                    raise
                # Another writer got in first; reload and merge again
                card = self.store.get(card.id)
                if card is None:
                    raise NotFoundError("Card was deleted while merging")
                continue

            logger.info(f"Merged '{file.original_name}' into existing card {updated.id}")
            return updated

    # ------------------------------------------------------------------
    # Batch (one processed file)
    # ------------------------------------------------------------------

    def ingest_processed_file(self, request: ProcessedFileRequest, owner_id: str) -> tuple[BatchOutcome, FileDescriptor]:
        """
        Ingest every item extracted from one uploaded file.

        Items that are too short or placeholders are skipped; an item that
        fails is logged and counted without aborting the batch.
        """
        if not request.filePath or not request.originalName or not request.filename or request.items is None:
            raise ValidationError("filePath, originalName, filename, and items (array) are required")

        file_hash = generate_file_hash(request.filePath)
        if file_hash is None:
            raise ValidationError("File not found at path")

        file = FileDescriptor(
            filename=request.filename,
            original_name=request.originalName,
            mimetype=request.mimetype or "application/octet-stream",
            size=request.size or 0,
            path=request.filePath,
            file_hash=file_hash,
        )
        request_tags = request.tags
        if isinstance(request_tags, str):
            request_tags = [tag.strip() for tag in request_tags.split(",") if tag.strip()]

        outcome = BatchOutcome(created=[], updated=[], skipped=0, failed=0)
        for item in request.items:
            content = (item.content or "").strip()
            if len(content) < MIN_CONTENT_LENGTH or content.lower() in PLACEHOLDER_TEXTS or not (item.title or "").strip():
                outcome.skipped += 1
                continue

            provenance = dict(item.provenance or {})
            if request.model_name:
                provenance["model_name"] = request.model_name
            if request.prompt_version:
                provenance["prompt_version"] = request.prompt_version
            if request.confidence_score is not None:
                provenance["confidence_score"] = request.confidence_score

            try:
                candidate = CandidateCard(
                    title=item.title,
                    content=item.content,
                    type=item.type,
                    category=request.category or item.category or DEFAULT_CATEGORY,
                    tags=request_tags if request_tags else (item.tags or []),
                    provenance=provenance or None,
                )
                result = self.create_or_update_from_processed_item(
                    candidate, owner_id, file, file_hash=file_hash, file_id=file.filename
                )
            except Exception as e:
                logger.error(f"Error processing item '{item.title}' from '{file.original_name}': {e}")
                outcome.failed += 1
                continue

            if result.is_duplicate:
                outcome.updated.append(result.card)
            else:
                outcome.created.append(result.card)

        logger.info(
            f"Processed '{file.original_name}': {len(outcome.created)} created, "
            f"{len(outcome.updated)} updated, {outcome.skipped} skipped, {outcome.failed} failed"
        )
        return outcome, file
