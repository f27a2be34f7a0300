"""
Merge helpers for re-ingested cards: provenance, attachments and source label.

All helpers are pure; they return new values which the caller writes back in
a single card update.
"""
from typing import List, Optional

from card_engine.schemas.card import Attachment, Provenance
from card_engine.schemas.ingestion import CandidateCard, FileDescriptor

DEFAULT_PROMPT_VERSION = "1.0"
SOURCE_SEPARATOR = ", "


# ============================================================================
# Provenance
# ============================================================================

def build_provenance(
    candidate: CandidateCard,
    file: FileDescriptor,
    file_hash: Optional[str],
    file_id: Optional[str],
) -> dict:
    """
    Build the provenance record for one ingestion event.

    The file identity comes from the upload; location, snippet and generation
    metadata come from the candidate card.
    """
    fragment = candidate.provenance or Provenance()
    return Provenance(
        source_file_id=file_id or file.filename,
        source_path=file.path,
        file_hash=file_hash or file.file_hash,
        location=fragment.location,
        snippet=fragment.snippet,
        model_name=fragment.model_name,
        prompt_version=fragment.prompt_version or DEFAULT_PROMPT_VERSION,
        confidence_score=fragment.confidence_score,
    ).model_dump()


def has_provenance_identity(provenance: Optional[dict]) -> bool:
    return bool(provenance and provenance.get("source_file_id"))


def merge_provenance(existing: Optional[dict], incoming: dict) -> Optional[dict]:
    """
    First write wins: incoming provenance only replaces a record that has no
    source file yet.

    Returns:
        The provenance to store, or None if the existing one is kept
    """
    if has_provenance_identity(existing):
        return None
    return incoming


def overlay_provenance(existing: Optional[dict], changes: dict) -> dict:
    """Overlay explicitly provided keys on the stored provenance (user edits)."""
    merged = dict(existing or {})
    merged.update({key: value for key, value in changes.items() if value is not None})
    return merged


def bump_prompt_version(version: Optional[str]) -> str:
    """Increment the minor component of a prompt version ("1.0" -> "1.1")."""
    parts = (version or DEFAULT_PROMPT_VERSION).split(".")
    try:
        major = int(parts[0])
    except ValueError:
        major = 1
    try:
        minor = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        minor = 0
    return f"{major}.{minor + 1}"


# ============================================================================
# Attachments
# ============================================================================

def attachment_from_file(file: FileDescriptor) -> dict:
    return Attachment(
        filename=file.filename,
        original_name=file.original_name,
        mimetype=file.mimetype,
        size=file.size,
        path=file.path,
    ).model_dump(by_alias=True)


def append_attachment(existing: Optional[List[dict]], attachment: dict) -> Optional[List[dict]]:
    """
    Append an attachment unless one with the same filename is already there.

    Returns:
        The new attachment list, or None if nothing changed
    """
    current = list(existing or [])
    if any(a.get("filename") == attachment["filename"] for a in current):
        return None
    current.append(attachment)
    return current


# ============================================================================
# Source label
# ============================================================================

def merge_source_label(existing: Optional[str], original_name: str) -> Optional[str]:
    """
    Add a filename to the comma-joined source label.

    Returns:
        The new label, or None if the name is already listed
    """
    if not existing:
        return original_name
    if original_name in [name.strip() for name in existing.split(",")]:
        return None
    return f"{existing}{SOURCE_SEPARATOR}{original_name}"
