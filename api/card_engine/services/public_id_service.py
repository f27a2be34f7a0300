"""
Public id service - short shareable card identifiers.
"""
import logging
import re
import secrets
from typing import Callable, Optional

from card_engine.core.config import settings
from card_engine.core.exceptions import PublicIdExhaustedError

logger = logging.getLogger(__name__)

# No 0/O or 1/I so ids survive being read aloud or retyped
PUBLIC_ID_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PUBLIC_ID_LENGTH = 6

_PUBLIC_ID_SHAPE = re.compile(r"^[A-Za-z0-9]{6}$")


def looks_like_public_id(identifier: Optional[str]) -> bool:
    """Check whether an identifier has the shape of a public card id."""
    return bool(identifier) and bool(_PUBLIC_ID_SHAPE.match(identifier.strip()))


def canonical_public_id(identifier: str) -> str:
    """Public ids are stored upper-case and compared case-insensitively."""
    return identifier.strip().upper()


class PublicIdAllocator:
    """
    Allocates 6-character public card ids.

    Each candidate is checked against the store before being accepted. Running
    out of attempts is a configuration problem (the id space is too crowded),
    so it raises instead of falling back to another format.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        generate: Optional[Callable[[], str]] = None,
    ):
        self.max_attempts = max_attempts or settings.public_id_max_attempts
        self._generate = generate or self._random_id

    @staticmethod
    def _random_id() -> str:
        return "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(PUBLIC_ID_LENGTH))

    def allocate(self, is_taken: Callable[[str], bool]) -> str:
        """
        Allocate a public id that is not taken yet.

        Args:
            is_taken: Callback reporting whether a canonical id already exists

        Returns:
            A free canonical public id

        Raises:
            PublicIdExhaustedError: If every attempt collided
        """
        for attempt in range(self.max_attempts):
            candidate = canonical_public_id(self._generate())
            if not is_taken(candidate):
                return candidate
            logger.warning(f"Public id collision on attempt {attempt + 1}: {candidate}")
        raise PublicIdExhaustedError(
            f"Could not allocate a unique public card id after {self.max_attempts} attempts"
        )
