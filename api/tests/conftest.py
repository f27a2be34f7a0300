"""
Shared fixtures: an in-memory SQLite store, fake generation backends and a
TestClient wired to them through dependency overrides.
"""
import os
import threading

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from card_engine.api.v1.dependencies import (
    get_ai_status_service,
    get_regeneration_coordinator,
)
from card_engine.core.database import build_engine, get_session
from card_engine.core.exceptions import UpstreamGenerationError
from card_engine.main import app
from card_engine.models.card import Card
from card_engine.schemas.ingestion import CandidateCard, FileDescriptor
from card_engine.schemas.regeneration import AIStatus, GeneratedCard
from card_engine.services.card_store import CardStore
from card_engine.services.ingestion_service import IngestionService
from card_engine.services.regeneration_service import RegenerationCoordinator

OWNER = "user-1"
OTHER_OWNER = "user-2"
AUTH_HEADERS = {"X-User-Id": OWNER, "X-User-Email": "one@example.com"}
OTHER_HEADERS = {"X-User-Id": OTHER_OWNER}


class FakeGenerator:
    """Returns a fixed card and records the snippets it was called with."""

    def __init__(self, title="Generated title", content="Generated content", model_name=None):
        self.title = title
        self.content = content
        self.model_name = model_name
        self.calls = []

    def generate(self, snippet, source_name="regenerated"):
        self.calls.append((snippet, source_name))
        return GeneratedCard(
            title=self.title,
            content=self.content,
            type="action",
            category="Regenerated",
            tags=["regen"],
            model_name=self.model_name,
        )


class FailingGenerator:
    def __init__(self, message="backend exploded"):
        self.message = message

    def generate(self, snippet, source_name="regenerated"):
        raise UpstreamGenerationError(self.message)


class BlockingGenerator(FakeGenerator):
    """Blocks until released, then returns its card."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = threading.Event()
        self.finished = threading.Event()

    def generate(self, snippet, source_name="regenerated"):
        self.release.wait(timeout=10)
        try:
            return super().generate(snippet, source_name)
        finally:
            self.finished.set()


class FakeAIStatus:
    def __init__(self, available=True):
        self.available = available

    def get_status(self):
        if self.available:
            return AIStatus(provider="test", model="test-model", available=True)
        return AIStatus(available=False, error="AI provider is not configured")


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(session):
    return CardStore(session)


@pytest.fixture
def ingestion(store):
    return IngestionService(store, sleep=lambda seconds: None)


@pytest.fixture
def file_descriptor():
    return FileDescriptor(
        filename="1700000000-policy.pdf",
        original_name="policy.pdf",
        mimetype="application/pdf",
        size=2048,
        path="/uploads/1700000000-policy.pdf",
        file_hash="a" * 64,
    )


@pytest.fixture
def make_card(store):
    """Create a card directly through the store."""
    def _make_card(title="Card title", content="Card content", owner_id=OWNER, **fields):
        fields.setdefault("category", "General")
        card = Card(owner_id=owner_id, title=title, content=content, **fields)
        return store.create(card)
    return _make_card


@pytest.fixture
def snippet_card(make_card):
    """A card with a snippet to regenerate from."""
    return make_card(
        title="Original title",
        content="Original content",
        source="policy.pdf",
        provenance={
            "source_file_id": "1700000000-policy.pdf",
            "location": "page 3",
            "snippet": "Employees must review the policy every year.",
            "prompt_version": "1.0",
        },
    )


@pytest.fixture
def rule_based():
    return FakeGenerator(title="Rule title", content="Rule content")


@pytest.fixture
def ai():
    return FakeGenerator(title="AI title", content="AI content", model_name="test-model")


@pytest.fixture
def ai_status():
    return FakeAIStatus(available=True)


@pytest.fixture
def coordinator(rule_based, ai, ai_status):
    coordinator = RegenerationCoordinator(rule_based=rule_based, ai=ai, ai_status=ai_status, timeout=5)
    yield coordinator
    coordinator.shutdown()


@pytest.fixture
def client(engine, coordinator, ai_status):
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_regeneration_coordinator] = lambda: coordinator
    app.dependency_overrides[get_ai_status_service] = lambda: ai_status
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def candidate():
    def _candidate(title="Annual review", content="Employees must review the policy every year.", **fields):
        return CandidateCard(title=title, content=content, **fields)
    return _candidate
