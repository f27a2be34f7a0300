"""
Custom exceptions for the application.
"""
from typing import Optional


class CardEngineException(Exception):
    """Base exception for all card engine application exceptions."""
    pass


class ValidationError(CardEngineException):
    """Raised when validation fails."""
    pass


class NotFoundError(CardEngineException):
    """Raised when a requested resource is not found."""
    pass


class ConflictError(CardEngineException):
    """Raised when there's a conflict (e.g., duplicate entry)."""
    pass


class DuplicateContentError(ConflictError):
    """Raised when a create loses the (owner_id, content_hash) uniqueness race."""

    def __init__(self, message: str, existing_card_id: Optional[str] = None):
        super().__init__(message)
        self.existing_card_id = existing_card_id


class AuthenticationError(CardEngineException):
    """Raised when authentication fails."""
    pass


class AuthorizationError(CardEngineException):
    """Raised when authorization fails."""
    pass


class PreconditionError(CardEngineException):
    """Raised when an operation cannot start (e.g. nothing to regenerate from)."""
    pass


class AIUnavailableError(PreconditionError):
    """Raised when AI generation is requested while the AI backend is unavailable."""
    pass


class UpstreamGenerationError(CardEngineException):
    """Raised when a rule-based or AI generation backend fails."""
    pass


class RegenerationTimeoutError(UpstreamGenerationError):
    """Raised when a regeneration attempt is abandoned after the configured ceiling."""
    pass


class TransientStorageError(CardEngineException):
    """Raised on connection loss or timeout against the store; safe to retry."""
    pass


class PublicIdExhaustedError(CardEngineException):
    """Raised when no free public card id could be allocated."""
    pass
