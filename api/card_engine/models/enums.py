"""
Model enums.
"""
from enum import Enum


class CardType(str, Enum):
    """Kind of learning card."""
    CONCEPT = "concept"
    ACTION = "action"
    QUOTE = "quote"
    CHECKLIST = "checklist"
    MINDMAP = "mindmap"


class GeneratedBy(str, Enum):
    """Which generation strategy produced the card's current content."""
    RULE_BASED = "rule-based"
    AI = "ai"


class RegenerationMode(str, Enum):
    """Regeneration flavours."""
    RULE_BASED = "rule-based"
    AI = "ai"
    COMPARISON = "comparison"


class RegenerationState(str, Enum):
    """Client-visible states of a regeneration interaction."""
    IDLE = "idle"
    RULE_BASED_RUNNING = "rule_based_running"
    AI_RUNNING = "ai_running"
    COMPARISON_RUNNING = "comparison_running"
    COMPARISON_READY = "comparison_ready"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class ComparisonVersion(str, Enum):
    """Variant picked from a comparison."""
    RULE_BASED = "ruleBased"
    AI = "ai"
