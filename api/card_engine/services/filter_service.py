"""
Filter service for parsing and applying card filters.
"""
from datetime import datetime, time, timezone
from sqlmodel import func, or_, select
from sqlalchemy import String as SAString, column
from typing import Optional
from card_engine.core.exceptions import ValidationError
from card_engine.models.card import Card
from card_engine.schemas.filter import CardFilterConfig, CardListOptions


SORT_COLUMNS = {
    "title": Card.title,
    "type": Card.type,
    "category": Card.category,
    "source": Card.source,
    "generatedBy": Card.generated_by,
    "createdAt": Card.created_at,
}


# ============================================================================
# Parameter Parsing Helpers
# ============================================================================

def parse_source_file_type(source_file_type: Optional[str]) -> Optional[str]:
    """Parse a file type filter ("pdf", ".PDF") into a bare lowercase extension."""
    if not source_file_type:
        return None
    ext = source_file_type.strip().lower().lstrip(".")
    return ext or None


def parse_search_term(term: Optional[str]) -> Optional[str]:
    if not term or not term.strip():
        return None
    return term.strip().lower()


def validate_list_options(options: CardListOptions) -> None:
    """Validate sorting and paging options."""
    if options.sort_by not in SORT_COLUMNS:
        raise ValidationError(
            f"sortBy must be one of: {', '.join(SORT_COLUMNS)}"
        )
    if options.sort_order.lower() not in ("asc", "desc"):
        raise ValidationError("sortOrder must be 'asc' or 'desc'")
    if options.skip < 0:
        raise ValidationError("skip must be >= 0")
    if options.limit is not None and options.limit < 1:
        raise ValidationError("limit must be >= 1")


# ============================================================================
# Query Filter Building Helpers
# ============================================================================

def _lower_contains(expr, term: str):
    return func.lower(expr).contains(term, autoescape=True)


def _json_elements(json_column, dialect: str, as_text: bool):
    """
    One row per element of a JSON array column, exposed as `.c.value`.

    SQLite's json_each yields scalars as their SQL value and objects as JSON
    text. On PostgreSQL, as_text picks json_array_elements_text (strings)
    over json_array_elements (json values).
    """
    if dialect == "postgresql":
        fn = func.json_array_elements_text if as_text else func.json_array_elements
        return fn(json_column).table_valued(column("value", SAString)).render_derived()
    return func.json_each(json_column).table_valued(column("value", SAString))


def _any_tag_contains(term: str, dialect: str):
    tags = _json_elements(Card.tags, dialect, as_text=True)
    return select(tags.c.value).where(_lower_contains(tags.c.value, term)).exists()


def _any_attachment_has_extension(ext: str, dialect: str):
    attachments = _json_elements(Card.attachments, dialect, as_text=False)
    if dialect == "postgresql":
        filename = attachments.c.value.op("->>", return_type=SAString)("filename")
    else:
        filename = func.json_extract(attachments.c.value, "$.filename", type_=SAString)
    return select(attachments.c.value).where(
        func.lower(filename).endswith(f".{ext}", autoescape=True)
    ).exists()


def apply_search_filter(query, search: Optional[str], dialect: str = "sqlite"):
    """Match the term in title, content or any tag (case-insensitive substring)."""
    term = parse_search_term(search)
    if term is None:
        return query
    return query.where(
        or_(
            _lower_contains(Card.title, term),
            _lower_contains(Card.content, term),
            _any_tag_contains(term, dialect),
        )
    )


def apply_source_filter(query, source: Optional[str]):
    term = parse_search_term(source)
    if term is None:
        return query
    return query.where(_lower_contains(Card.source, term))


def apply_source_file_type_filter(query, source_file_type: Optional[str], dialect: str = "sqlite"):
    """Match cards with an attachment whose filename ends in the extension."""
    ext = parse_source_file_type(source_file_type)
    if ext is None:
        return query
    return query.where(_any_attachment_has_extension(ext, dialect))


def apply_date_filter(query, date_from, date_to):
    """Apply an inclusive creation-date range (whole UTC days)."""
    if date_from is not None:
        query = query.where(Card.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to is not None:
        query = query.where(Card.created_at <= datetime.combine(date_to, time.max, tzinfo=timezone.utc))
    return query


def apply_card_filters(query, owner_id: str, filters: Optional[CardFilterConfig], dialect: str = "sqlite"):
    """
    Apply the owner scope and every filter to a card query.

    Used by both the list and the count query. Tags and attachments are
    matched element by element with the database's JSON functions, picked
    by dialect name.
    """
    query = query.where(Card.owner_id == owner_id)
    if filters is None:
        return query

    if filters.type is not None:
        query = query.where(Card.type == filters.type.value)
    if filters.category:
        query = query.where(Card.category == filters.category)
    query = apply_search_filter(query, filters.search, dialect)
    query = apply_source_filter(query, filters.source)
    query = apply_source_file_type_filter(query, filters.source_file_type, dialect)
    query = apply_date_filter(query, filters.date_from, filters.date_to)
    return query


# ============================================================================
# Sorting Helpers
# ============================================================================

def apply_card_sorting(query, options: CardListOptions):
    """Sort by the requested column, then by id so pages never overlap."""
    sort_column = SORT_COLUMNS[options.sort_by]
    if options.sort_order.lower() == "asc":
        return query.order_by(sort_column.asc(), Card.id.asc())
    return query.order_by(sort_column.desc(), Card.id.desc())
