"""
Regeneration service - regenerate a card from its stored snippet.

Three modes:
- rule-based: run the deterministic generator and apply the result
- AI: run the AI generator and apply the result
- comparison: run both, hold the two results, and apply the one the user
  picks (or discard both on cancel)

Attempts live in memory, one per card, guarded by a lock. A comparison the
user never applies or cancels expires after a TTL. A card with an
attempt in flight rejects new regenerate requests. Apply is a compare-and-swap
on the card version the attempt started from, so an edit made while the user
was comparing wins over the stale regeneration.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
from uuid import uuid4

from card_engine.core.config import settings
from card_engine.core.exceptions import (
    AIUnavailableError,
    ConflictError,
    PreconditionError,
    RegenerationTimeoutError,
    TransientStorageError,
    UpstreamGenerationError,
    ValidationError,
)
from card_engine.models.card import Card, utcnow
from card_engine.models.enums import ComparisonVersion, GeneratedBy, RegenerationMode, RegenerationState
from card_engine.schemas.regeneration import GeneratedCard
from card_engine.services.card_store import CardStore
from card_engine.services.generation_service import AIGenerator, AIStatusService, RuleBasedGenerator
from card_engine.services.merge_service import bump_prompt_version

logger = logging.getLogger(__name__)


@dataclass
class RegenerationAttempt:
    """One in-flight or completed regenerate call. Never persisted."""
    card_id: str
    owner_id: str
    mode: RegenerationMode
    state: RegenerationState
    base_version: int
    attempt_id: str = field(default_factory=lambda: uuid4().hex)
    rule_based_result: Optional[GeneratedCard] = None
    ai_result: Optional[GeneratedCard] = None
    rule_based_error: Optional[str] = None
    ai_error: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)


class RegenerationCoordinator:
    """Runs regeneration attempts and applies their results to cards."""

    def __init__(
        self,
        rule_based: RuleBasedGenerator,
        ai: AIGenerator,
        ai_status: AIStatusService,
        timeout: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        attempt_ttl: Optional[float] = None,
    ):
        self.rule_based = rule_based
        self.ai = ai
        self.ai_status = ai_status
        self.timeout = timeout if timeout is not None else settings.regeneration_timeout_seconds
        self.attempt_ttl = attempt_ttl if attempt_ttl is not None else settings.regeneration_attempt_ttl_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.regeneration_workers,
            thread_name_prefix="regenerate",
        )
        self._attempts: Dict[str, RegenerationAttempt] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Attempt bookkeeping
    # ------------------------------------------------------------------

    def _purge_expired_locked(self) -> None:
        """Drop attempts older than the TTL. Caller holds the lock."""
        cutoff = utcnow() - timedelta(seconds=self.attempt_ttl)
        expired = [card_id for card_id, attempt in self._attempts.items() if attempt.started_at < cutoff]
        for card_id in expired:
            attempt = self._attempts.pop(card_id)
            attempt.state = RegenerationState.CANCELLED
            logger.info(f"Regeneration {attempt.attempt_id} for card {card_id} expired")

    def get_attempt(self, card_id: str) -> Optional[RegenerationAttempt]:
        with self._lock:
            self._purge_expired_locked()
            return self._attempts.get(card_id)

    def _claim(self, card: Card, mode: RegenerationMode, state: RegenerationState) -> RegenerationAttempt:
        with self._lock:
            self._purge_expired_locked()
            if card.id in self._attempts:
                raise ConflictError("A regeneration is already in progress for this card")
            attempt = RegenerationAttempt(
                card_id=card.id,
                owner_id=card.owner_id,
                mode=mode,
                state=state,
                base_version=card.version,
            )
            self._attempts[card.id] = attempt
            return attempt

    def _release(self, attempt: RegenerationAttempt) -> None:
        with self._lock:
            if self._attempts.get(attempt.card_id) is attempt:
                del self._attempts[attempt.card_id]

    def cancel(self, card_id: str, owner_id: str) -> bool:
        """
        Discard the card's pending attempt without touching the card.

        A generator still running for a cancelled attempt finishes in the
        background and its result is dropped.
        """
        with self._lock:
            self._purge_expired_locked()
            attempt = self._attempts.get(card_id)
            if attempt is None or attempt.owner_id != owner_id:
                return False
            del self._attempts[card_id]
        attempt.state = RegenerationState.CANCELLED
        logger.info(f"Cancelled regeneration {attempt.attempt_id} for card {card_id}")
        return True

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    @staticmethod
    def _snippet_of(card: Card) -> Tuple[str, str]:
        provenance = card.provenance or {}
        snippet = provenance.get("snippet")
        if not snippet or not str(snippet).strip():
            raise PreconditionError("Card does not have a provenance snippet to regenerate from")
        source_name = card.source or provenance.get("source_path") or "regenerated"
        return snippet, source_name

    def _require_ai(self) -> None:
        status = self.ai_status.get_status()
        if not status.available:
            raise AIUnavailableError(status.error or "AI generation is not available")

    # ------------------------------------------------------------------
    # Single-strategy modes
    # ------------------------------------------------------------------

    def regenerate_rule_based(self, store: CardStore, card: Card) -> Card:
        """Regenerate with the rule-based generator and apply the result."""
        snippet, source_name = self._snippet_of(card)
        attempt = self._claim(card, RegenerationMode.RULE_BASED, RegenerationState.RULE_BASED_RUNNING)
        try:
            result = self._run_with_ceiling(self.rule_based.generate, snippet, source_name)
            updated = self._apply(store, card, result, GeneratedBy.RULE_BASED, attempt.base_version)
            attempt.state = RegenerationState.APPLIED
            return updated
        finally:
            self._release(attempt)

    def regenerate_ai(self, store: CardStore, card: Card) -> Card:
        """Regenerate with the AI generator and apply the result."""
        snippet, source_name = self._snippet_of(card)
        self._require_ai()
        attempt = self._claim(card, RegenerationMode.AI, RegenerationState.AI_RUNNING)
        try:
            result = self._run_with_ceiling(self.ai.generate, snippet, source_name)
            updated = self._apply(store, card, result, GeneratedBy.AI, attempt.base_version)
            attempt.state = RegenerationState.APPLIED
            return updated
        finally:
            self._release(attempt)

    def _run_with_ceiling(self, fn, *args) -> GeneratedCard:
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            raise RegenerationTimeoutError(
                f"Regeneration timed out after {self.timeout:g} seconds"
            ) from e

    # ------------------------------------------------------------------
    # Comparison mode
    # ------------------------------------------------------------------

    def start_comparison(self, store: CardStore, card: Card) -> RegenerationAttempt:
        """
        Run both generators on the card's snippet and hold the results.

        Either side may fail on its own; the attempt is still ready with the
        other side selectable. If the ceiling passes first, the attempt is
        abandoned and anything that arrives later is dropped.

        Returns:
            The attempt, in state COMPARISON_READY

        Raises:
            PreconditionError: No snippet, or AI unavailable
            ConflictError: Another attempt is in flight for the card
            RegenerationTimeoutError: The ceiling passed before both sides finished
            UpstreamGenerationError: Both sides failed
        """
        snippet, source_name = self._snippet_of(card)
        self._require_ai()
        attempt = self._claim(card, RegenerationMode.COMPARISON, RegenerationState.COMPARISON_RUNNING)

        try:
            rule_future = self._executor.submit(self.rule_based.generate, snippet, source_name)
            ai_future = self._executor.submit(self.ai.generate, snippet, source_name)
        except RuntimeError as e:
            self._release(attempt)
            raise UpstreamGenerationError(f"Could not start regeneration: {e}") from e

        _, pending = wait([rule_future, ai_future], timeout=self.timeout)
        if pending:
            self._release(attempt)
            attempt.state = RegenerationState.CANCELLED
            logger.warning(
                f"Comparison {attempt.attempt_id} for card {card.id} abandoned after {self.timeout:g}s"
            )
            raise RegenerationTimeoutError(
                f"Regeneration timed out after {self.timeout:g} seconds"
            )

        rule_result, rule_error = self._collect(rule_future, "Rule-based")
        ai_result, ai_error = self._collect(ai_future, "AI")

        if rule_result is None and ai_result is None:
            self._release(attempt)
            raise UpstreamGenerationError(
                f"Both generators failed. Rule-based: {rule_error}. AI: {ai_error}"
            )

        with self._lock:
            if self._attempts.get(card.id) is not attempt:
                raise ConflictError("Regeneration was cancelled before it completed")
            attempt.rule_based_result = rule_result
            attempt.rule_based_error = rule_error
            attempt.ai_result = ai_result
            attempt.ai_error = ai_error
            attempt.state = RegenerationState.COMPARISON_READY

        logger.info(
            f"Comparison {attempt.attempt_id} ready for card {card.id} "
            f"(rule-based: {'ok' if rule_result else 'failed'}, AI: {'ok' if ai_result else 'failed'})"
        )
        return attempt

    @staticmethod
    def _collect(future: Future, label: str) -> Tuple[Optional[GeneratedCard], Optional[str]]:
        try:
            return future.result(), None
        except Exception as e:
            logger.error(f"{label} generation failed: {e}")
            return None, str(e) or type(e).__name__

    def apply_comparison(
        self,
        store: CardStore,
        card: Card,
        selected: ComparisonVersion,
        attempt_id: Optional[str] = None,
    ) -> Card:
        """
        Apply the selected variant of a ready comparison.

        Raises:
            PreconditionError: No comparison is ready for the card
            ConflictError: attempt_id names an older attempt, or the card
                changed since the comparison started
            ValidationError: The selected variant has no result
        """
        with self._lock:
            self._purge_expired_locked()
            attempt = self._attempts.get(card.id)
            if attempt is None or attempt.state != RegenerationState.COMPARISON_READY:
                raise PreconditionError("No regeneration comparison is ready for this card")
            if attempt_id and attempt_id != attempt.attempt_id:
                raise ConflictError("Comparison data is stale; regenerate again")

            if selected == ComparisonVersion.AI:
                result, error, generated_by = attempt.ai_result, attempt.ai_error, GeneratedBy.AI
            else:
                result, error, generated_by = attempt.rule_based_result, attempt.rule_based_error, GeneratedBy.RULE_BASED
            if result is None:
                raise ValidationError(
                    f"The {selected.value} version is not available: {error or 'no result'}"
                )
            # Taken out before writing so it cannot be applied twice
            del self._attempts[card.id]

        try:
            updated = self._apply(store, card, result, generated_by, attempt.base_version)
        except TransientStorageError:
            with self._lock:
                self._attempts.setdefault(card.id, attempt)
            raise

        attempt.state = RegenerationState.APPLIED
        return updated

    # ------------------------------------------------------------------
    # Writing results
    # ------------------------------------------------------------------

    def _apply(
        self,
        store: CardStore,
        card: Card,
        result: GeneratedCard,
        generated_by: GeneratedBy,
        base_version: int,
    ) -> Card:
        provenance = dict(card.provenance or {})
        provenance["prompt_version"] = bump_prompt_version(provenance.get("prompt_version"))
        if generated_by == GeneratedBy.AI and result.model_name:
            provenance["model_name"] = result.model_name

        updated = store.update(
            card,
            {
                "title": result.title,
                "content": result.content,
                "type": result.type,
                "category": result.category,
                "tags": list(result.tags),
                "generated_by": generated_by,
                "provenance": provenance,
            },
            expected_version=base_version,
        )
        logger.info(f"Applied {generated_by.value} regeneration to card {card.id}")
        return updated
