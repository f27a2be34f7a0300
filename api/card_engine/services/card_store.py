"""
Card store - persistence of cards scoped to their owner.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select, func
from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from card_engine.core.exceptions import (
    ConflictError,
    DuplicateContentError,
    NotFoundError,
    PublicIdExhaustedError,
    TransientStorageError,
)
from card_engine.models.card import Card, utcnow
from card_engine.models.enums import CardType, GeneratedBy
from card_engine.schemas.filter import CardFilterConfig, CardListOptions
from card_engine.services.filter_service import (
    apply_card_filters,
    apply_card_sorting,
    validate_list_options,
)
from card_engine.services.fingerprint_service import fingerprint
from card_engine.services.public_id_service import (
    PublicIdAllocator,
    canonical_public_id,
    looks_like_public_id,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "title",
    "content",
    "type",
    "category",
    "tags",
    "source",
    "is_public",
    "generated_by",
    "provenance",
    "attachments",
    "card_metadata",
}


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


class CardStore:
    """
    Create/read/update/delete cards for an owner.

    Every write is a single-row statement. Updates bump the row version and
    may be made conditional on the version the caller last read.
    """

    def __init__(self, session: Session, allocator: Optional[PublicIdAllocator] = None):
        self.session = session
        self.allocator = allocator or PublicIdAllocator()

    @property
    def dialect(self) -> str:
        return self.session.get_bind().dialect.name

    @contextmanager
    def _storage_errors(self):
        """
        Turn connection-level failures into TransientStorageError.

        Any failure rolls the session back first, so the next operation on
        the same session starts from a clean transaction.
        """
        try:
            yield
        except OperationalError as e:
            self.session.rollback()
            logger.error(f"Storage operation failed: {e}")
            raise TransientStorageError(f"Storage temporarily unavailable: {e.orig}") from e
        except DBAPIError as e:
            self.session.rollback()
            if not e.connection_invalidated:
                raise
            logger.error(f"Storage connection lost: {e}")
            raise TransientStorageError("Storage connection lost") from e
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, card_pk: str) -> Optional[Card]:
        with self._storage_errors():
            return self.session.get(Card, card_pk)

    def find_by_card_id(self, card_id: str) -> Optional[Card]:
        """Find a card by public id, case-insensitively."""
        with self._storage_errors():
            return self.session.exec(
                select(Card).where(Card.card_id == canonical_public_id(card_id))
            ).first()

    def card_id_exists(self, card_id: str) -> bool:
        return self.find_by_card_id(card_id) is not None

    def find_one_by_owner(self, id_or_card_id: str, owner_id: str) -> Card:
        """
        Resolve a card for reading.

        Identifiers shaped like a public id are looked up by card_id first;
        such a card is readable by its owner or, if public, by anyone. Any
        other identifier (or a public-id miss) is resolved as an internal id
        restricted to the owner.

        Raises:
            NotFoundError: If the card does not exist or is not accessible
        """
        if looks_like_public_id(id_or_card_id):
            card = self.find_by_card_id(id_or_card_id)
            if card is not None:
                if card.owner_id == owner_id or card.is_public:
                    return card
                raise NotFoundError("Card not found")

        card = self.get(id_or_card_id)
        if card is None or card.owner_id != owner_id:
            raise NotFoundError("Card not found")
        return card

    def find_owned(self, id_or_card_id: str, owner_id: str) -> Card:
        """Resolve a card for writing: only its owner may mutate it, public or not."""
        card = self.find_one_by_owner(id_or_card_id, owner_id)
        if card.owner_id != owner_id:
            raise NotFoundError("Card not found")
        return card

    def find_by_owner(
        self,
        owner_id: str,
        filters: Optional[CardFilterConfig] = None,
        options: Optional[CardListOptions] = None,
    ) -> List[Card]:
        """Return one filtered, sorted page of the owner's cards."""
        options = options or CardListOptions()
        validate_list_options(options)

        query = apply_card_filters(select(Card), owner_id, filters, self.dialect)
        query = apply_card_sorting(query, options)
        if options.skip:
            query = query.offset(options.skip)
        if options.limit is not None:
            query = query.limit(options.limit)

        with self._storage_errors():
            return list(self.session.exec(query).all())

    def count_by_owner(self, owner_id: str, filters: Optional[CardFilterConfig] = None) -> int:
        query = apply_card_filters(select(func.count(Card.id)), owner_id, filters, self.dialect)
        with self._storage_errors():
            return self.session.exec(query).one()

    def find_duplicate(self, content_hash: str, owner_id: str) -> Optional[Card]:
        """Return the owner's card with this fingerprint, if any."""
        if not content_hash:
            return None
        with self._storage_errors():
            return self.session.exec(
                select(Card).where(
                    Card.owner_id == owner_id,
                    Card.content_hash == content_hash,
                )
            ).first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, card: Card, fingerprinted: bool = True) -> Card:
        """
        Persist a new card, allocating its public id.

        The content_hash is computed from title and content unless the caller
        set one already. fingerprinted=False stores the card without one, for
        cards that are allowed to repeat another card's text.

        Raises:
            DuplicateContentError: If another card of the owner already holds
                the same content_hash (a concurrent create won the race)
            PublicIdExhaustedError: If no free public id could be allocated
        """
        card.type = _enum_value(card.type or CardType.CONCEPT)
        card.generated_by = _enum_value(card.generated_by or GeneratedBy.RULE_BASED)
        if not fingerprinted:
            card.content_hash = None
        elif not card.content_hash:
            card.content_hash = fingerprint(card.title, card.content)

        for _ in range(self.allocator.max_attempts):
            if not card.card_id:
                card.card_id = self.allocator.allocate(self.card_id_exists)
            else:
                card.card_id = canonical_public_id(card.card_id)

            try:
                with self._storage_errors():
                    self.session.add(card)
                    self.session.commit()
            except IntegrityError as e:
                self.session.rollback()
                if card.content_hash:
                    existing = self.find_duplicate(card.content_hash, card.owner_id)
                    if existing is not None:
                        raise DuplicateContentError(
                            "A card with the same content already exists",
                            existing_card_id=existing.id,
                        ) from e
                if not self.card_id_exists(card.card_id):
                    raise ConflictError("Failed to create card: constraint violation") from e
                # Someone took the public id between the check and the insert
                logger.warning(f"Public id {card.card_id} taken at insert, allocating another")
                card.card_id = None
                continue

            self.session.refresh(card)
            logger.info(f"Created card {card.id} ({card.card_id}) for owner {card.owner_id}")
            return card

        raise PublicIdExhaustedError("Could not insert card with a unique public id")

    def update(
        self,
        card: Card,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Card:
        """
        Apply a partial update to a card in one statement.

        Only keys present in the patch change. The content_hash is recomputed
        when title or content change.

        Args:
            card: The card to update (as currently loaded)
            patch: Field name -> new value
            expected_version: If set, only update when the row still has this
                version (compare-and-swap)

        Raises:
            ConflictError: On a version mismatch or if the new fingerprint is
                already used by another of the owner's cards
            NotFoundError: If the card no longer exists
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        values = {key: _enum_value(value) for key, value in patch.items()}
        if "title" in values or "content" in values:
            title = values.get("title", card.title)
            content = values.get("content", card.content)
            if title != card.title or content != card.content:
                values["content_hash"] = fingerprint(title, content)
        values["updated_at"] = utcnow()

        statement = update(Card).where(Card.id == card.id)
        if expected_version is not None:
            statement = statement.where(Card.version == expected_version)
        statement = statement.values(version=Card.version + 1, **values).execution_options(
            synchronize_session=False
        )

        try:
            with self._storage_errors():
                result = self.session.execute(statement)
                if result.rowcount == 0:
                    self.session.rollback()
                    if self.get(card.id) is None:
                        raise NotFoundError("Card not found")
                    raise ConflictError("Card was modified concurrently; reload and try again")
                self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConflictError(
                "Another card with the same title and content already exists"
            ) from e

        self.session.refresh(card)
        return card

    def delete(self, id_or_card_id: str, owner_id: str) -> str:
        """
        Delete an owned card.

        Collections referencing the card call this and then drop the id from
        their membership.

        Returns:
            The internal id of the deleted card
        """
        card = self.find_owned(id_or_card_id, owner_id)
        card_pk = card.id
        with self._storage_errors():
            self.session.delete(card)
            self.session.commit()
        logger.info(f"Deleted card {card_pk} for owner {owner_id}")
        return card_pk
