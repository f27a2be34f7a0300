"""
Tests for public card id allocation and lookup.
"""
import pytest

from card_engine.core.exceptions import PublicIdExhaustedError
from card_engine.services.public_id_service import (
    PUBLIC_ID_ALPHABET,
    PUBLIC_ID_LENGTH,
    PublicIdAllocator,
    canonical_public_id,
    looks_like_public_id,
)
from card_engine.models.card import Card
from card_engine.services.card_store import CardStore

from conftest import OTHER_OWNER, OWNER


def test_allocated_ids_use_the_unambiguous_alphabet():
    allocator = PublicIdAllocator()
    card_id = allocator.allocate(lambda candidate: False)
    assert len(card_id) == PUBLIC_ID_LENGTH
    assert all(ch in PUBLIC_ID_ALPHABET for ch in card_id)
    assert not set("01IO") & set(card_id)


def test_thousands_of_allocations_are_unique():
    allocator = PublicIdAllocator()
    taken = set()
    for _ in range(5000):
        taken.add(allocator.allocate(lambda candidate: candidate in taken))
    assert len(taken) == 5000


def test_allocation_retries_on_collision():
    candidates = iter(["AAAAAA", "aaaaaa", "BBBBBB"])
    allocator = PublicIdAllocator(max_attempts=5, generate=lambda: next(candidates))
    assert allocator.allocate(lambda candidate: candidate == "AAAAAA") == "BBBBBB"


def test_allocation_exhaustion_raises():
    allocator = PublicIdAllocator(max_attempts=10, generate=lambda: "AAAAAA")
    with pytest.raises(PublicIdExhaustedError):
        allocator.allocate(lambda candidate: True)


def test_public_id_shape():
    assert looks_like_public_id("ab3dEF")
    assert not looks_like_public_id("abc")
    assert not looks_like_public_id("0b8f2c1e-7d1f-4a57-9c55-3a9d1e0e0a11")
    assert not looks_like_public_id(None)
    assert canonical_public_id(" ab3def ") == "AB3DEF"


def test_lookup_is_case_insensitive(store, make_card):
    card = make_card()
    assert card.card_id == card.card_id.upper()
    assert store.find_by_card_id(card.card_id.lower()).id == card.id
    assert store.find_one_by_owner(card.card_id.lower(), OWNER).id == card.id


def test_store_reallocates_when_public_id_is_taken(session, make_card):
    first = make_card(title="First")
    candidates = iter([first.card_id, "ZZZZZZ"])
    store = CardStore(session, allocator=PublicIdAllocator(generate=lambda: next(candidates)))

    second = store.create(Card(owner_id=OTHER_OWNER, title="Second", content="Body", category="General"))
    assert second.card_id == "ZZZZZZ"
