"""
Tests for the regeneration coordinator.
"""
from datetime import timedelta

import pytest

from card_engine.core.exceptions import (
    AIUnavailableError,
    ConflictError,
    PreconditionError,
    RegenerationTimeoutError,
    UpstreamGenerationError,
    ValidationError,
)
from card_engine.models.enums import ComparisonVersion, GeneratedBy, RegenerationState
from card_engine.services.merge_service import bump_prompt_version
from card_engine.services.regeneration_service import RegenerationCoordinator

from conftest import BlockingGenerator, FailingGenerator, FakeAIStatus, OTHER_OWNER, OWNER


def test_bump_prompt_version():
    assert bump_prompt_version("1.0") == "1.1"
    assert bump_prompt_version("2.9") == "2.10"
    assert bump_prompt_version(None) == "1.1"
    assert bump_prompt_version("3") == "3.1"


def test_card_without_snippet_cannot_be_regenerated(coordinator, store, make_card):
    card = make_card(provenance=None)
    with pytest.raises(PreconditionError):
        coordinator.regenerate_rule_based(store, card)
    with pytest.raises(PreconditionError):
        coordinator.start_comparison(store, card)
    assert coordinator.get_attempt(card.id) is None


def test_rule_based_regeneration_applies_immediately(coordinator, rule_based, store, snippet_card):
    updated = coordinator.regenerate_rule_based(store, snippet_card)

    assert rule_based.calls == [("Employees must review the policy every year.", "policy.pdf")]
    assert updated.title == "Rule title"
    assert updated.content == "Rule content"
    assert updated.type == "action"
    assert updated.generated_by == GeneratedBy.RULE_BASED.value
    assert updated.provenance["prompt_version"] == "1.1"
    assert updated.provenance["location"] == "page 3"
    assert updated.provenance["snippet"] == "Employees must review the policy every year."
    assert updated.version == 2
    assert coordinator.get_attempt(snippet_card.id) is None


def test_ai_regeneration_records_model(coordinator, store, snippet_card):
    updated = coordinator.regenerate_ai(store, snippet_card)
    assert updated.title == "AI title"
    assert updated.generated_by == GeneratedBy.AI.value
    assert updated.provenance["model_name"] == "test-model"


def test_ai_unavailable_fails_before_calling_backend(rule_based, ai, store, snippet_card):
    coordinator = RegenerationCoordinator(rule_based, ai, FakeAIStatus(available=False), timeout=5)
    try:
        with pytest.raises(AIUnavailableError):
            coordinator.start_comparison(store, snippet_card)
        with pytest.raises(AIUnavailableError):
            coordinator.regenerate_ai(store, snippet_card)
        assert ai.calls == []
        assert rule_based.calls == []
        assert coordinator.get_attempt(snippet_card.id) is None
    finally:
        coordinator.shutdown()


def test_comparison_holds_both_results_without_writing(coordinator, store, snippet_card):
    attempt = coordinator.start_comparison(store, snippet_card)

    assert attempt.state == RegenerationState.COMPARISON_READY
    assert attempt.rule_based_result.title == "Rule title"
    assert attempt.ai_result.title == "AI title"
    assert store.get(snippet_card.id).version == 1

    updated = coordinator.apply_comparison(store, snippet_card, ComparisonVersion.AI, attempt.attempt_id)
    assert updated.title == "AI title"
    assert updated.generated_by == GeneratedBy.AI.value
    assert coordinator.get_attempt(snippet_card.id) is None


def test_comparison_with_failed_ai_keeps_rule_based_selectable(rule_based, store, snippet_card):
    coordinator = RegenerationCoordinator(
        rule_based, FailingGenerator("AI quota exceeded"), FakeAIStatus(), timeout=5
    )
    try:
        attempt = coordinator.start_comparison(store, snippet_card)
        assert attempt.ai_result is None
        assert "AI quota exceeded" in attempt.ai_error
        assert attempt.rule_based_result is not None

        with pytest.raises(ValidationError):
            coordinator.apply_comparison(store, snippet_card, ComparisonVersion.AI)
        # Rejecting the missing side does not discard the comparison
        assert coordinator.get_attempt(snippet_card.id) is attempt

        updated = coordinator.apply_comparison(store, snippet_card, ComparisonVersion.RULE_BASED)
        assert updated.title == "Rule title"
        assert updated.generated_by == GeneratedBy.RULE_BASED.value
    finally:
        coordinator.shutdown()


def test_comparison_with_both_sides_failing(store, snippet_card):
    coordinator = RegenerationCoordinator(
        FailingGenerator("rules"), FailingGenerator("model"), FakeAIStatus(), timeout=5
    )
    try:
        with pytest.raises(UpstreamGenerationError):
            coordinator.start_comparison(store, snippet_card)
        assert coordinator.get_attempt(snippet_card.id) is None
    finally:
        coordinator.shutdown()


def test_comparison_timeout_discards_late_result(rule_based, session, store, snippet_card):
    slow_ai = BlockingGenerator(title="Late AI title", content="Late AI content")
    coordinator = RegenerationCoordinator(rule_based, slow_ai, FakeAIStatus(), timeout=0.2)
    try:
        with pytest.raises(RegenerationTimeoutError):
            coordinator.start_comparison(store, snippet_card)
        assert coordinator.get_attempt(snippet_card.id) is None

        slow_ai.release.set()
        assert slow_ai.finished.wait(timeout=5)

        session.expire_all()
        card = store.get(snippet_card.id)
        assert card.title == "Original title"
        assert card.version == 1
        with pytest.raises(PreconditionError):
            coordinator.apply_comparison(store, card, ComparisonVersion.AI)
    finally:
        slow_ai.release.set()
        coordinator.shutdown()


def test_rule_based_timeout(ai, store, snippet_card):
    slow_rules = BlockingGenerator()
    coordinator = RegenerationCoordinator(slow_rules, ai, FakeAIStatus(), timeout=0.2)
    try:
        with pytest.raises(RegenerationTimeoutError):
            coordinator.regenerate_rule_based(store, snippet_card)
        assert coordinator.get_attempt(snippet_card.id) is None
    finally:
        slow_rules.release.set()
        coordinator.shutdown()


def test_second_regeneration_while_one_is_pending_is_rejected(coordinator, store, snippet_card):
    coordinator.start_comparison(store, snippet_card)
    with pytest.raises(ConflictError):
        coordinator.regenerate_rule_based(store, snippet_card)
    with pytest.raises(ConflictError):
        coordinator.start_comparison(store, snippet_card)


def test_apply_after_card_was_edited_is_a_conflict(coordinator, store, snippet_card):
    attempt = coordinator.start_comparison(store, snippet_card)
    edited = store.update(snippet_card, {"title": "Edited by hand"})

    with pytest.raises(ConflictError):
        coordinator.apply_comparison(store, edited, ComparisonVersion.AI, attempt.attempt_id)
    assert store.get(snippet_card.id).title == "Edited by hand"
    assert coordinator.get_attempt(snippet_card.id) is None


def test_apply_with_stale_attempt_id_is_a_conflict(coordinator, store, snippet_card):
    coordinator.start_comparison(store, snippet_card)
    with pytest.raises(ConflictError):
        coordinator.apply_comparison(store, snippet_card, ComparisonVersion.AI, "not-the-attempt")


def test_apply_without_comparison(coordinator, store, snippet_card):
    with pytest.raises(PreconditionError):
        coordinator.apply_comparison(store, snippet_card, ComparisonVersion.RULE_BASED)


def test_cancel_discards_comparison(coordinator, store, snippet_card):
    coordinator.start_comparison(store, snippet_card)

    assert coordinator.cancel(snippet_card.id, OTHER_OWNER) is False
    assert coordinator.cancel(snippet_card.id, OWNER) is True
    assert coordinator.cancel(snippet_card.id, OWNER) is False

    with pytest.raises(PreconditionError):
        coordinator.apply_comparison(store, snippet_card, ComparisonVersion.AI)
    assert store.get(snippet_card.id).version == 1
    # A new attempt can start after cancelling
    assert coordinator.start_comparison(store, snippet_card).state == RegenerationState.COMPARISON_READY


def test_unapplied_comparison_expires_after_ttl(rule_based, ai, store, snippet_card):
    coordinator = RegenerationCoordinator(rule_based, ai, FakeAIStatus(), timeout=5, attempt_ttl=60)
    try:
        attempt = coordinator.start_comparison(store, snippet_card)
        assert coordinator.get_attempt(snippet_card.id) is attempt

        attempt.started_at -= timedelta(seconds=61)
        assert coordinator.get_attempt(snippet_card.id) is None
        assert attempt.state == RegenerationState.CANCELLED
        with pytest.raises(PreconditionError):
            coordinator.apply_comparison(store, snippet_card, ComparisonVersion.AI)
        # The card is free for a new attempt
        assert coordinator.start_comparison(store, snippet_card).state == RegenerationState.COMPARISON_READY
    finally:
        coordinator.shutdown()


def test_independent_cards_regenerate_independently(coordinator, store, snippet_card, make_card):
    other = make_card(
        title="Second card",
        content="Second content",
        provenance={"source_file_id": "x", "snippet": "Another snippet"},
    )
    coordinator.start_comparison(store, snippet_card)
    updated = coordinator.regenerate_rule_based(store, other)
    assert updated.title == "Rule title"
