"""
Shared FastAPI dependencies for the v1 endpoints.
"""
from datetime import date
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Query
from sqlmodel import Session

from card_engine.core.database import get_session
from card_engine.models.enums import CardType
from card_engine.schemas.filter import CardFilterConfig
from card_engine.services.card_store import CardStore
from card_engine.services.generation_service import AIGenerator, AIStatusService, RuleBasedGenerator
from card_engine.services.ingestion_service import IngestionService
from card_engine.services.regeneration_service import RegenerationCoordinator


def get_card_store(session: Session = Depends(get_session)) -> CardStore:
    return CardStore(session)


def get_ingestion_service(store: CardStore = Depends(get_card_store)) -> IngestionService:
    return IngestionService(store)


@lru_cache
def get_rule_based_generator() -> RuleBasedGenerator:
    return RuleBasedGenerator()


@lru_cache
def get_ai_generator() -> AIGenerator:
    return AIGenerator()


@lru_cache
def get_ai_status_service() -> AIStatusService:
    return AIStatusService()


@lru_cache
def get_regeneration_coordinator() -> RegenerationCoordinator:
    """Process-wide coordinator; its in-flight guard must be shared by all requests."""
    return RegenerationCoordinator(
        rule_based=get_rule_based_generator(),
        ai=get_ai_generator(),
        ai_status=get_ai_status_service(),
    )


def get_card_filters(
    card_type: Optional[CardType] = Query(None, alias="type"),
    category: Optional[str] = None,
    search: Optional[str] = None,
    source: Optional[str] = None,
    source_file_type: Optional[str] = Query(None, alias="sourceFileType"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
) -> CardFilterConfig:
    """Read card filters from the query string (shared by list and count)."""
    return CardFilterConfig(
        type=card_type,
        category=category,
        search=search,
        source=source,
        source_file_type=source_file_type,
        date_from=date_from,
        date_to=date_to,
    )
