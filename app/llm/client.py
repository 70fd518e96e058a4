"""
LLM Client
==========
Unified asynchronous client wrapper for LLM providers.
Supports Groq / OpenRouter (OpenAI-compatible) and Gemini (REST).

Model Boundary:
    invoke(messages, max_output_tokens) -> ModelOutput

    `messages` is an ordered list of {"role": system|user|assistant,
    "content": str}. One request per provider attempt, no streaming.

Output Normalisation:
    Providers (and gateways in front of them) sometimes hand back an
    already-decoded object and sometimes a string, possibly wrapped in
    markdown. normalize_output() folds every shape into one tagged result:
        StructuredOutput(value)  — a decoded JSON object
        TextOutput(text)         — anything else, as text
    The report synthesizer consumes only these two variants.

Provider Fallback:
    - Providers are tried in router order; each gets `max_retries` attempts
    - HTTP 429 skips straight to the next provider
    - Empty responses count as failures
    - ModelInvocationError is raised when every provider failed
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from app.llm.router import LLMRouter, ProviderConfig

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class ModelInvocationError(Exception):
    """Raised when no provider produced a response."""


# ---------------------------------------------------------------------------
# Output variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class StructuredOutput:
    value: Dict[str, Any]


@dataclass(frozen=True)
class TextOutput:
    text: str


ModelOutput = Union[StructuredOutput, TextOutput]


def normalize_output(raw: Any) -> ModelOutput:
    """
    Fold a provider payload into StructuredOutput / TextOutput.

    A {"response": ...} envelope (Workers AI style) is unwrapped first.
    """
    if isinstance(raw, (StructuredOutput, TextOutput)):
        return raw
    if isinstance(raw, dict):
        if set(raw.keys()) == {"response"}:
            return normalize_output(raw["response"])
        return StructuredOutput(value=raw)
    if raw is None:
        return TextOutput(text="")
    if isinstance(raw, str):
        return TextOutput(text=raw)
    if isinstance(raw, bytes):
        return TextOutput(text=raw.decode("utf-8", errors="replace"))
    return TextOutput(text=json.dumps(raw))


def _is_empty(output: ModelOutput) -> bool:
    return isinstance(output, TextOutput) and not output.text.strip()


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------
class LLMClient:
    """
    Async HTTP client for calling LLM providers.

    Usage:
        client = LLMClient()
        output = await client.invoke(messages, max_output_tokens=2048)
        await client.close()
    """

    def __init__(
        self,
        router: Optional[LLMRouter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.router = router or LLMRouter()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(60.0),
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def invoke(self, messages: List[Message], max_output_tokens: int = 2048) -> ModelOutput:
        """
        Send `messages` to the first provider that answers.

        Raises
        ------
        ModelInvocationError
            If every candidate provider failed.
        """
        tried: List[str] = []
        for provider in self.router.candidates():
            tried.append(provider.name)
            output = await self.call(messages, provider, max_output_tokens)
            if output is not None:
                self.router.report_success(provider.name)
                return output
            self.router.report_failure(provider.name)

        raise ModelInvocationError(
            f"All providers failed ({', '.join(tried) or 'none configured'})"
        )

    async def call(
        self,
        messages: List[Message],
        provider: ProviderConfig,
        max_output_tokens: int,
    ) -> Optional[ModelOutput]:
        """Try one provider up to `max_retries` times. Returns None on failure."""
        for attempt in range(1, provider.max_retries + 1):
            try:
                if provider.name == "gemini":
                    raw = await self._call_gemini(messages, provider, max_output_tokens)
                else:
                    raw = await self._call_openai_compatible(messages, provider, max_output_tokens)

                output = normalize_output(raw)
                if not _is_empty(output):
                    return output

                logger.warning("Provider %s attempt %d: empty response", provider.name, attempt)

            except httpx.TimeoutException:
                logger.warning("Provider %s attempt %d: timeout", provider.name, attempt)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning("Provider %s attempt %d: HTTP %d", provider.name, attempt, status)
                if status == 429:  # Rate limit
                    break
            except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
                logger.warning("Provider %s attempt %d: %s", provider.name, attempt, e)

        return None

    async def _call_gemini(
        self,
        messages: List[Message],
        provider: ProviderConfig,
        max_output_tokens: int,
    ) -> Any:
        """Call Gemini REST API."""
        http = await self._get_http()
        url = f"{provider.base_url}/models/{provider.model}:generateContent"

        system_parts = [{"text": m["content"]} for m in messages if m["role"] == "system"]
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] != "system"
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": 0.2,
                "maxOutputTokens": max_output_tokens,
                "responseMimeType": "application/json",
            },
        }
        if system_parts:
            payload["system_instruction"] = {"parts": system_parts}

        resp = await http.post(
            url,
            json=payload,
            params={"key": provider.api_key},
            timeout=provider.timeout_seconds,
        )
        resp.raise_for_status()
        data = resp.json()

        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts)

    async def _call_openai_compatible(
        self,
        messages: List[Message],
        provider: ProviderConfig,
        max_output_tokens: int,
    ) -> Any:
        """Call OpenAI-compatible API (Groq, OpenRouter)."""
        http = await self._get_http()
        url = f"{provider.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {provider.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": provider.model,
            "messages": messages,
            "temperature": 0.2,
            "max_tokens": max_output_tokens,
            "response_format": {"type": "json_object"},
        }
        resp = await http.post(url, json=payload, headers=headers, timeout=provider.timeout_seconds)
        resp.raise_for_status()
        data = resp.json()

        choices = data.get("choices") or []
        if not choices:
            return ""
        return choices[0].get("message", {}).get("content", "")
