"""
Provider clients, one per API family.

Every client exposes `call(credential, messages) -> str` and raises
ProviderCallError with an HTTP-like status code on failure.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError

from shared.config import settings
from shared.errors import ProviderCallError
from shared.logging import get_logger
from shared.models.provider import Credential, FailureClass, ProviderFamily, ProviderSpec

from .config import OPENROUTER_AFFORD_FLOOR, OPENROUTER_AFFORD_MARGIN, OPENROUTER_HEADERS

logger = get_logger("provider_gateway.providers")

Messages = List[Dict[str, str]]

_AFFORD_PATTERN = re.compile(r"can only afford\s+(\d+)\b", re.IGNORECASE)


def affordable_max_tokens(error_text: str, requested: int) -> Optional[int]:
    """
    Parse OpenRouter's 402 "can only afford N" and return a retry budget.

    Returns None when no worthwhile lower budget exists.
    """
    match = _AFFORD_PATTERN.search(error_text or "")
    if not match:
        return None
    affordable = int(match.group(1))
    if affordable <= OPENROUTER_AFFORD_FLOOR or affordable >= requested:
        return None
    return max(OPENROUTER_AFFORD_FLOOR, affordable - OPENROUTER_AFFORD_MARGIN)


class OpenAICompatibleClient:
    """Chat completions through the openai SDK against a custom base URL."""

    def __init__(
        self,
        spec: ProviderSpec,
        timeout: Optional[float] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        self.spec = spec
        self.timeout = timeout or settings.provider_timeout_seconds
        self._client_factory = client_factory or AsyncOpenAI
        self._clients: Dict[Tuple[int, str], Any] = {}

    def _get_client(self, credential: Credential) -> Any:
        key = (credential.index, credential.secret)
        client = self._clients.get(key)
        if client is None:
            headers = OPENROUTER_HEADERS if self.spec.name == "openrouter" else None
            client = self._client_factory(
                api_key=credential.secret,
                base_url=self.spec.base_url,
                max_retries=0,  # Failover executor owns retries
                timeout=self.timeout,
                default_headers=headers,
            )
            self._clients[key] = client
        return client

    async def aclose(self) -> None:
        """Close every cached SDK client."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()

    async def _create(self, client: Any, messages: Messages, max_tokens: int) -> Any:
        request: Dict[str, Any] = {
            "model": self.spec.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": self.spec.temperature,
        }
        if self.spec.supports_json_mode:
            request["response_format"] = {"type": "json_object"}
        return await client.chat.completions.create(**request)

    async def call(
        self,
        credential: Credential,
        messages: Messages,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Run one chat completion.

        Args:
            credential: Key to authenticate with
            messages: Chat messages (role/content dicts)
            max_tokens: Override for the provider's default budget

        Returns:
            Raw text content of the first choice

        Raises:
            ProviderCallError: On any upstream failure or an empty response
        """
        budget = max_tokens or self.spec.max_tokens
        client = self._get_client(credential)

        try:
            try:
                response = await self._create(client, messages, budget)
            except APIStatusError as e:
                retry_budget = None
                if self.spec.name == "openrouter" and e.status_code == 402:
                    retry_budget = affordable_max_tokens(str(e), budget)
                if retry_budget is None:
                    raise
                logger.warning(
                    "OpenRouter credit limit, retrying with lower max_tokens",
                    extra={"provider": self.spec.name, "max_tokens": retry_budget, "requested": budget}
                )
                response = await self._create(client, messages, retry_budget)
        except APIStatusError as e:
            raise ProviderCallError(
                f"{self.spec.name} API error: {e.status_code} - {e.message}",
                provider=self.spec.name,
                status_code=e.status_code,
            ) from e
        except OpenAIError as e:
            raise ProviderCallError(
                f"{self.spec.name} request failed: {str(e)}",
                provider=self.spec.name,
                failure_class=FailureClass.SERVER_ERROR if isinstance(e, APIConnectionError) else None,
            ) from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        if not content:
            raise ProviderCallError(
                f"{self.spec.name} returned an empty response",
                provider=self.spec.name,
            )
        return content


class GeminiClient:
    """Gemini generateContent over its REST API."""

    def __init__(
        self,
        spec: ProviderSpec,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.spec = spec
        self.timeout = timeout or settings.provider_timeout_seconds
        self._transport = transport

    @staticmethod
    def _build_prompt(messages: Messages) -> str:
        system = next((m.get("content", "") for m in messages if m.get("role") == "system"), "")
        user = next((m.get("content", "") for m in messages if m.get("role") == "user"), "")
        return f"{system}\n\n{user}" if system else user

    async def call(
        self,
        credential: Credential,
        messages: Messages,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Run one generateContent request and return the first candidate's text."""
        url = f"{self.spec.base_url}/models/{self.spec.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": self._build_prompt(messages)}]}],
            "generationConfig": {
                "maxOutputTokens": max_tokens or self.spec.max_tokens,
                "temperature": self.spec.temperature,
                "responseMimeType": "application/json",
            },
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url, headers={"x-goog-api-key": credential.secret}, json=payload
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderCallError(
                f"Gemini API error: {e.response.status_code} - {e.response.text}",
                provider=self.spec.name,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderCallError(
                f"Gemini request failed: {type(e).__name__}: {str(e)}",
                provider=self.spec.name,
                failure_class=FailureClass.SERVER_ERROR if isinstance(e, httpx.TransportError) else None,
            ) from e
        except ValueError as e:
            raise ProviderCallError(
                f"Gemini returned a non-JSON body: {str(e)}",
                provider=self.spec.name,
            ) from e

        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            content = ""
        if not content:
            raise ProviderCallError("Gemini returned an empty response", provider=self.spec.name)
        return content


def build_client(spec: ProviderSpec, timeout: Optional[float] = None) -> Any:
    """Client for a provider's API family."""
    if spec.family == ProviderFamily.GEMINI:
        return GeminiClient(spec, timeout=timeout)
    return OpenAICompatibleClient(spec, timeout=timeout)
