"""
Models package - imports all models so they register with SQLModel metadata.
"""
from card_engine.models.enums import (
    CardType,
    GeneratedBy,
    RegenerationMode,
    RegenerationState,
    ComparisonVersion,
)
from card_engine.models.card import Card

__all__ = [
    'CardType',
    'GeneratedBy',
    'RegenerationMode',
    'RegenerationState',
    'ComparisonVersion',
    'Card',
]
