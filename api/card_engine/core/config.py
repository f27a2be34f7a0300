from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging
import os
from pathlib import Path

_logger = logging.getLogger(__name__)

# Look for .env in api directory (parent of card_engine directory)
api_dir = Path(__file__).parent.parent.parent
env_path = api_dir / ".env"

if env_path.exists():
    load_dotenv(env_path, override=False)
    _logger.info(f"Loaded .env file from: {env_path}")
else:
    # Fallback to current directory
    current_env = Path(".env")
    if current_env.exists():
        load_dotenv(current_env, override=False)
        _logger.info(f"Loaded .env file from: {current_env.absolute()}")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database - DATABASE_URL (uppercase) in deployments
    database_url: str = ""

    # API
    api_v1_prefix: str = "/api/v1"
    environment: str = "production"

    # CORS
    cors_origins: list[str] = ["*"]

    # Generation backends (rule-based extraction service and AI service)
    rule_based_service_url: str = ""
    ai_service_url: str = ""
    generation_request_timeout: float = 60.0

    # Regeneration
    regeneration_timeout_seconds: float = 60.0  # Comparison-mode ceiling
    regeneration_workers: int = 8
    regeneration_attempt_ttl_seconds: float = 1800.0  # Unapplied comparisons are dropped after this

    # Public card ids
    public_id_max_attempts: int = 10

    # Ingestion
    ingestion_max_retries: int = 3
    ingestion_retry_backoff_seconds: float = 0.5

    # Listing
    page_size_default: int = 20
    page_size_max: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = False

    def __init__(self, **kwargs):
        # Ensure we read DATABASE_URL from environment
        if not kwargs.get("database_url"):
            kwargs["database_url"] = os.getenv("DATABASE_URL", "")
        super().__init__(**kwargs)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")


# Create settings instance
settings = Settings()

# Validate required DATABASE_URL
if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is required")
