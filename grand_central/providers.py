"""
Provider Clients
=================
One stateless adapter per text-generation backend, all behind the same
``complete(prompt, history) -> str`` interface.

OpenAI, DeepSeek and Grok speak the OpenAI chat-completions format;
Claude uses the Anthropic messages API.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import httpx

from .config import GrandCentralConfig, ProviderDefinition
from .credentials import ProviderCredentials
from .errors import InvalidCredentials, ProviderAPIError
from .models import Provider

logger = logging.getLogger(__name__)

History = Sequence[Dict[str, str]]

EMPTY_RESPONSE = "I'm sorry, I couldn't generate a response."
ANTHROPIC_VERSION = "2023-06-01"


class ProviderClient(ABC):
    """Issues one request to one backend and returns its text."""

    provider: Provider

    def __init__(
        self,
        definition: ProviderDefinition,
        credentials: Optional[ProviderCredentials],
        timeout_s: float = 30.0,
        history_limit: int = 8,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.definition = definition
        self.credentials = credentials
        self.timeout_s = timeout_s
        self.history_limit = history_limit
        self._http = http_client

    @property
    def base_url(self) -> str:
        if self.credentials and self.credentials.base_url:
            return self.credentials.base_url.rstrip("/")
        return self.definition.base_url

    @property
    def model(self) -> str:
        if self.credentials and self.credentials.model:
            return self.credentials.model
        return self.definition.model

    @property
    def system_prompt(self) -> str:
        if self.definition.role_instruction:
            return f"{self.definition.system_prompt} {self.definition.role_instruction}"
        return self.definition.system_prompt

    def _api_key(self) -> str:
        if not self.credentials or not self.credentials.api_key:
            raise InvalidCredentials(
                f"{self.definition.label} API key not provided", provider=self.provider
            )
        return self.credentials.api_key

    def _trim_history(self, history: History) -> List[Dict[str, str]]:
        trimmed = list(history)[-self.history_limit:] if self.history_limit else []
        return [
            {"role": "user" if m.get("role") == "user" else "assistant", "content": m.get("content", "")}
            for m in trimmed
        ]

    async def _post(self, url: str, headers: Dict[str, str], payload: dict) -> dict:
        if self._http is not None:
            resp = await self._http.post(url, headers=headers, json=payload, timeout=self.timeout_s)
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            resp = await client.post(url, headers=headers, json=payload)
            resp.raise_for_status()
            return resp.json()

    @abstractmethod
    async def complete(self, prompt: str, history: History = ()) -> str:
        ...


class ChatCompletionsClient(ProviderClient):
    """OpenAI-compatible /chat/completions backend."""

    async def complete(self, prompt: str, history: History = ()) -> str:
        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(self._trim_history(history))
        messages.append({"role": "user", "content": prompt})

        data = await self._post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._api_key()}",
                "Content-Type": "application/json",
            },
            payload={
                "model": self.model,
                "messages": messages,
                "max_tokens": self.definition.max_tokens,
                "temperature": self.definition.temperature,
                "stream": False,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise ProviderAPIError(
                f"Malformed response from {self.provider.value}", provider=self.provider
            ) from None
        return content or EMPTY_RESPONSE


class OpenAIClient(ChatCompletionsClient):
    provider = Provider.OPENAI


class DeepSeekClient(ChatCompletionsClient):
    provider = Provider.DEEPSEEK


class GrokClient(ChatCompletionsClient):
    provider = Provider.GROK


class ClaudeClient(ProviderClient):
    provider = Provider.CLAUDE

    async def complete(self, prompt: str, history: History = ()) -> str:
        messages = self._trim_history(history)
        messages.append({"role": "user", "content": prompt})

        data = await self._post(
            f"{self.base_url}/messages",
            headers={
                "x-api-key": self._api_key(),
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            payload={
                "model": self.model,
                "max_tokens": self.definition.max_tokens,
                "system": self.system_prompt,
                "messages": messages,
            },
        )
        blocks = data.get("content") or []
        if blocks and blocks[0].get("type") == "text":
            return blocks[0].get("text") or EMPTY_RESPONSE
        return EMPTY_RESPONSE


CLIENT_TYPES: Dict[Provider, type] = {
    Provider.OPENAI: OpenAIClient,
    Provider.CLAUDE: ClaudeClient,
    Provider.DEEPSEEK: DeepSeekClient,
    Provider.GROK: GrokClient,
}


def build_client(
    provider: Provider,
    credentials: Optional[ProviderCredentials],
    config: GrandCentralConfig,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProviderClient:
    """Construct the client for a provider from config + credentials."""
    provider = Provider.parse(provider)
    client_cls = CLIENT_TYPES[provider]
    return client_cls(
        config.providers[provider],
        credentials,
        timeout_s=config.call_timeout_s,
        history_limit=config.client_history_limit,
        http_client=http_client,
    )
