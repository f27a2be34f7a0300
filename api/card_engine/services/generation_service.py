"""
Clients for the external card generation backends.

Both the rule-based extractor and the AI service take a snippet and return
card fields as JSON. Everything that can go wrong on the way (transport,
HTTP status, malformed body) surfaces as UpstreamGenerationError.
"""
import json
import logging
from typing import Optional

import requests
from pydantic import ValidationError as PydanticValidationError

from card_engine.core.config import settings
from card_engine.core.exceptions import UpstreamGenerationError
from card_engine.schemas.regeneration import AIStatus, GeneratedCard

logger = logging.getLogger(__name__)

MAX_SNIPPET_LENGTH = 1000


def truncate_snippet(snippet: str, max_length: int = MAX_SNIPPET_LENGTH) -> str:
    if len(snippet) <= max_length:
        return snippet
    return snippet[:max_length] + "..."


def extract_json_object(text: str) -> dict:
    """
    Parse a JSON object out of a backend reply.

    Replies may wrap the JSON in markdown code fences or surrounding prose.
    """
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end <= start:
        raise UpstreamGenerationError("No valid JSON found in generation response")
    try:
        return json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse generation JSON: {e}")
        logger.error(f"Response text: {text[:500]}")
        raise UpstreamGenerationError(f"Generation backend returned invalid JSON: {str(e)}")


def _describe_request_error(service: str, e: requests.exceptions.RequestException) -> str:
    error_msg = f"{service} request failed: {str(e)}"
    if getattr(e, 'response', None) is not None:
        try:
            error_data = e.response.json()
            error_msg += f" - {error_data.get('error', error_data)}"
        except ValueError:
            error_msg += f" - Status: {e.response.status_code}"
    return error_msg


class _GenerationClient:
    """POST {snippet, sourceFileName} to a backend and validate the card it returns."""

    service_name = "Generation"
    path = "/regenerate"

    def __init__(self, base_url: Optional[str], timeout: Optional[float] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout or settings.generation_request_timeout

    def generate(self, snippet: str, source_name: str = "regenerated") -> GeneratedCard:
        if not self.base_url:
            raise UpstreamGenerationError(f"{self.service_name} service URL is not configured")

        payload = {"snippet": truncate_snippet(snippet), "sourceFileName": source_name}
        try:
            response = requests.post(
                f"{self.base_url}{self.path}",
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            error_msg = _describe_request_error(self.service_name, e)
            logger.error(error_msg)
            raise UpstreamGenerationError(error_msg) from e

        try:
            data = response.json()
        except ValueError:
            data = extract_json_object(response.text)
        if isinstance(data, dict) and isinstance(data.get("card"), dict):
            data = data["card"]

        try:
            return GeneratedCard.model_validate(data)
        except PydanticValidationError as e:
            logger.error(f"{self.service_name} output validation failed: {str(e)}")
            raise UpstreamGenerationError(f"{self.service_name} response missing required fields") from e


class RuleBasedGenerator(_GenerationClient):
    """Deterministic extractor: same snippet in, same card out."""
    service_name = "Rule-based generation"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(base_url if base_url is not None else settings.rule_based_service_url, timeout)


class AIGenerator(_GenerationClient):
    """AI model backend behind the AI service."""
    service_name = "AI generation"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(base_url if base_url is not None else settings.ai_service_url, timeout)


class AIStatusService:
    """
    Answers whether AI generation is available, and with which provider/model.

    Provider settings live with the AI service; the engine only asks.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: float = 5.0):
        self.base_url = (base_url if base_url is not None else settings.ai_service_url).rstrip("/")
        self.timeout = timeout

    def get_status(self) -> AIStatus:
        if not self.base_url:
            return AIStatus(available=False, error="AI provider is not configured")
        try:
            response = requests.get(f"{self.base_url}/status", timeout=self.timeout)
            response.raise_for_status()
            return AIStatus.model_validate(response.json())
        except requests.exceptions.RequestException as e:
            error_msg = _describe_request_error("AI status", e)
            logger.warning(error_msg)
            return AIStatus(available=False, error=f"AI service not reachable: {str(e)}")
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"AI status response invalid: {e}")
            return AIStatus(available=False, error="AI service returned an invalid status")
