"""
Content fingerprinting for duplicate detection.
"""
import hashlib
from pathlib import Path
from typing import Optional

# Whitespace runs collapse to a single space during normalization, so this
# control character can never survive inside a normalized field.
FIELD_SEPARATOR = "\x1f"


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize a card field for fingerprinting.

    Case-folds, trims, and collapses every whitespace run to a single space,
    so formatting differences between two extractions of the same text do not
    change the fingerprint.

    Args:
        text: The raw field value (None is treated as empty)

    Returns:
        Normalized text
    """
    if not text:
        return ""
    return " ".join(text.casefold().split())


def fingerprint(title: Optional[str], content: Optional[str]) -> str:
    """
    Compute the content hash of a card from its title and content.

    Args:
        title: Card title
        content: Card body

    Returns:
        Hex SHA-256 digest of the normalized title and content
    """
    joined = f"{normalize_text(title)}{FIELD_SEPARATOR}{normalize_text(content)}"
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def generate_file_hash(file_path: str) -> Optional[str]:
    """Hex SHA-256 of a file's bytes, or None if it cannot be read."""
    path = Path(file_path)
    if not path.is_file():
        return None
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()
