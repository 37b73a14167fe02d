"""
Inference Gateway
=================
Thin async capability over the remote inference backend.

Contract:
    is_available() -> bool
    complete(prompt, system_instruction) -> str     (raises InferenceError)

Boundary Rules:
    - Gateway NEVER retries. Retry budgets belong to the callers
      (ReportGenerator retries, AttackSynthesizer does not).
    - Gateway NEVER parses JSON or code out of the completion; it returns
      the raw text of the first choice.
    - Any transport error, non-2xx status or malformed body becomes an
      InferenceError so callers handle exactly one failure type.

Backend:
    OpenAI-compatible `/chat/completions` (0G compute providers and the usual
    hosted gateways speak this shape).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from prophet.core.config import (
    INFERENCE_API_KEY, INFERENCE_BASE_URL, INFERENCE_MODEL,
    INFERENCE_TIMEOUT_SECONDS, INFERENCE_MAX_TOKENS,
)

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Raised when the inference backend cannot produce a completion."""


class InferenceGateway(Protocol):
    def is_available(self) -> bool:
        ...

    async def complete(self, prompt: str, system_instruction: str) -> str:
        ...


# ---------------------------------------------------------------------------
# Provider Configuration
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for the OpenAI-compatible inference provider."""
    name: str
    api_key: str
    base_url: str
    model: str
    timeout_seconds: float = 60.0
    max_tokens: int = 8192
    temperature: float = 0.1


def default_provider() -> ProviderConfig:
    """Provider built from environment configuration."""
    return ProviderConfig(
        name="0g",
        api_key=INFERENCE_API_KEY or "",
        base_url=(INFERENCE_BASE_URL or "").rstrip("/"),
        model=INFERENCE_MODEL,
        timeout_seconds=INFERENCE_TIMEOUT_SECONDS,
        max_tokens=INFERENCE_MAX_TOKENS,
    )


# ---------------------------------------------------------------------------
# HTTP Gateway
# ---------------------------------------------------------------------------
class HttpInferenceGateway:
    """
    Async HTTP gateway for an OpenAI-compatible completion endpoint.

    Usage:
        gateway = HttpInferenceGateway()
        if gateway.is_available():
            text = await gateway.complete("Analyze...", "You are...")
        await gateway.close()
    """

    def __init__(
        self,
        provider: Optional[ProviderConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = provider or default_provider()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def is_available(self) -> bool:
        return bool(self.provider.api_key and self.provider.base_url)

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self.provider.timeout_seconds),
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def complete(self, prompt: str, system_instruction: str) -> str:
        """
        Send one chat completion request.

        Parameters
        ----------
        prompt : str
            The user prompt.
        system_instruction : str
            The system prompt describing role and output format.

        Returns
        -------
        str
            Text content of the first choice.

        Raises
        ------
        InferenceError
            Backend not configured, request failed, or the body had no content.
        """
        if not self.is_available():
            raise InferenceError("Inference backend is not configured")

        http = await self._get_http()
        url = f"{self.provider.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.provider.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.provider.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.provider.temperature,
            "max_tokens": self.provider.max_tokens,
        }

        try:
            resp = await http.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise InferenceError(f"{self.provider.name} request timed out") from e
        except httpx.HTTPStatusError as e:
            raise InferenceError(
                f"{self.provider.name} returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise InferenceError(f"{self.provider.name} request failed: {e}") from e

        # Extract text from OpenAI-compatible response
        try:
            content = data["choices"][0]["message"]["content"]
        except (IndexError, KeyError, TypeError) as e:
            raise InferenceError(f"{self.provider.name} returned no choices") from e

        if not isinstance(content, str) or not content.strip():
            raise InferenceError(f"{self.provider.name} returned an empty completion")

        logger.debug("%s completion received (%d chars)", self.provider.name, len(content))
        return content
