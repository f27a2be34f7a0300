"""
Tests for the HTTP generation clients.
"""
import pytest

from card_engine.core.exceptions import UpstreamGenerationError
from card_engine.models.card import MAX_TITLE_LENGTH
from card_engine.services import generation_service
from card_engine.services.generation_service import AIGenerator, RuleBasedGenerator


class FakeResponse:
    def __init__(self, data):
        self.data = data
        self.text = str(data)

    def raise_for_status(self):
        pass

    def json(self):
        return self.data


@pytest.fixture
def backend(monkeypatch):
    """Replace requests.post; set `reply` to the JSON body the backend returns."""
    calls = []

    class Backend:
        reply = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json))
        return FakeResponse(Backend.reply)

    monkeypatch.setattr(generation_service.requests, "post", fake_post)
    Backend.calls = calls
    return Backend


def test_generator_posts_snippet_and_parses_card(backend):
    backend.reply = {"card": {"title": "Review yearly", "content": "Every year.", "type": "action", "tags": "policy"}}
    card = RuleBasedGenerator(base_url="http://rules.local/").generate("Employees must review...", "policy.pdf")

    assert backend.calls == [
        ("http://rules.local/regenerate", {"snippet": "Employees must review...", "sourceFileName": "policy.pdf"})
    ]
    assert card.title == "Review yearly"
    assert card.tags == ["policy"]


def test_generated_titles_are_clipped_to_the_column_limit(backend):
    backend.reply = {"title": "A very long generated title " * 20, "content": "Body"}
    card = AIGenerator(base_url="http://ai.local").generate("snippet")

    assert len(card.title) == MAX_TITLE_LENGTH
    assert card.title.endswith("...")


def test_generated_card_without_content_is_an_upstream_error(backend):
    backend.reply = {"title": "Only a title"}
    with pytest.raises(UpstreamGenerationError):
        AIGenerator(base_url="http://ai.local").generate("snippet")


def test_unconfigured_generator_is_an_upstream_error():
    with pytest.raises(UpstreamGenerationError):
        RuleBasedGenerator(base_url="").generate("snippet")
