"""
LLM Router
==========
Decides which LLM provider to use and manages provider switching.

Routing Strategy:
    1. Try providers in order: Groq → Gemini → OpenRouter
    2. Providers without an API key are never selected
    3. On failure (HTTP error, timeout, rate limit) → next healthy provider

Provider Health Tracking:
    - Track consecutive failures per provider
    - After PROVIDER_COOLDOWN_THRESHOLD failures in a row the provider
      sits out PROVIDER_COOLDOWN_SKIP_COUNT selections
    - Health is process-wide, shared by all concurrent audit jobs
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from app.core.config import (
    GEMINI_API_KEY, GROQ_API_KEY, OPENROUTER_API_KEY,
    PROVIDER_COOLDOWN_THRESHOLD, PROVIDER_COOLDOWN_SKIP_COUNT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider Configuration
# ---------------------------------------------------------------------------
@dataclass
class ProviderConfig:
    """Configuration for a single LLM provider."""
    name: str
    api_key: str
    base_url: str
    model: str
    max_retries: int = 2
    timeout_seconds: int = 60


GROQ_CONFIG = ProviderConfig(
    name="groq",
    api_key=GROQ_API_KEY or "",
    base_url="https://api.groq.com/openai/v1",
    model="llama-3.3-70b-versatile",
)

GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    api_key=GEMINI_API_KEY or "",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    model="gemini-2.0-flash",
)

OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    api_key=OPENROUTER_API_KEY or "",
    base_url="https://openrouter.ai/api/v1",
    model="meta-llama/llama-3.3-70b-instruct:free",
    max_retries=1,
)


# ---------------------------------------------------------------------------
# Provider Health Tracker
# ---------------------------------------------------------------------------
@dataclass
class ProviderHealth:
    """Tracks consecutive failures and cooldown for a provider."""
    consecutive_failures: int = 0
    is_healthy: bool = True
    max_failures: int = PROVIDER_COOLDOWN_THRESHOLD
    cooldown_remaining: int = 0

    def record_failure(self) -> None:
        """Record a failure. Enter cooldown after max consecutive failures."""
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.max_failures:
            self.is_healthy = False
            self.cooldown_remaining = PROVIDER_COOLDOWN_SKIP_COUNT
            logger.warning(
                "Provider entering cooldown after %d failures (skip %d calls)",
                self.consecutive_failures, self.cooldown_remaining,
            )

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def tick_cooldown(self) -> None:
        """Decrement cooldown. Auto-re-enable when cooldown expires."""
        if self.cooldown_remaining > 0:
            self.cooldown_remaining -= 1
            if self.cooldown_remaining <= 0:
                self.is_healthy = True
                # One more failure puts it straight back into cooldown
                self.consecutive_failures = max(1, self.max_failures - 1)
                logger.info("Provider cooldown expired, re-enabled (cautious)")


# ---------------------------------------------------------------------------
# LLM Router
# ---------------------------------------------------------------------------
class LLMRouter:
    """
    Orders configured providers by preference and health.

    Usage:
        router = LLMRouter()
        for provider in router.candidates():
            ...
            router.report_success(provider.name)   # or report_failure(...)
    """

    def __init__(self, providers: Optional[List[ProviderConfig]] = None) -> None:
        if providers is None:
            providers = [GROQ_CONFIG, GEMINI_CONFIG, OPENROUTER_CONFIG]
        self._providers = [p for p in providers if p.api_key]
        if not self._providers:
            logger.warning("No LLM provider API keys configured")
        self._health: Dict[str, ProviderHealth] = {
            p.name: ProviderHealth() for p in self._providers
        }

    def candidates(self) -> List[ProviderConfig]:
        """
        Providers to try for one request, in order.

        Healthy providers come first. If every provider is cooling down,
        the full list is returned anyway so a request is still attempted.
        """
        for h in self._health.values():
            h.tick_cooldown()

        healthy = [p for p in self._providers if self._health[p.name].is_healthy]
        if healthy:
            return healthy
        if self._providers:
            logger.warning("All providers unhealthy, trying them anyway")
        return list(self._providers)

    def report_success(self, provider_name: str) -> None:
        health = self._health.get(provider_name)
        if health:
            health.record_success()

    def report_failure(self, provider_name: str) -> None:
        health = self._health.get(provider_name)
        if health:
            health.record_failure()

    def get_health(self, provider_name: str) -> Optional[ProviderHealth]:
        """Get health tracker for a provider (for testing)."""
        return self._health.get(provider_name)

    @property
    def provider_health_state(self) -> Dict[str, Any]:
        return {
            name: {
                "is_healthy": h.is_healthy,
                "consecutive_failures": h.consecutive_failures,
                "cooldown_remaining": h.cooldown_remaining,
            }
            for name, h in self._health.items()
        }
