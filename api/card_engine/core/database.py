from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.pool import StaticPool
from card_engine.core.config import settings
import json
import logging

logger = logging.getLogger(__name__)


def _json_serializer(value) -> str:
    # Store non-ASCII tags and filenames unescaped
    return json.dumps(value, ensure_ascii=False)


def build_engine(db_url: str):
    """
    Create a database engine for the given URL.

    PostgreSQL is the production store. SQLite is accepted for local runs and
    tests; an in-memory SQLite database is shared across threads via StaticPool.
    """
    # Ensure the URL uses postgresql:// (not postgres://) for SQLAlchemy
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, echo=False, json_serializer=_json_serializer, **kwargs)

    return create_engine(
        db_url,
        echo=False,
        json_serializer=_json_serializer,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


logger.info(f"Connecting to database: {settings.database_url[:20]}...")  # Log partial URL for debugging

engine = build_engine(settings.database_url)


def get_session():
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session


def init_db():
    """Initialize database tables."""
    SQLModel.metadata.create_all(engine)
