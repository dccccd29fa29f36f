"""
Credentials sources. A provider without a key is simply not available:
it is skipped by dispatch and never chosen as a fallback.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .models import Provider


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str
    base_url: Optional[str] = None   # Override the default endpoint
    model: Optional[str] = None      # Override the default model

    def __repr__(self) -> str:
        return f"ProviderCredentials(api_key='***', base_url={self.base_url!r}, model={self.model!r})"


class CredentialsSource(ABC):
    """Where per-provider keys come from (env, settings form, vault...)."""

    @abstractmethod
    def get(self, provider: Provider) -> Optional[ProviderCredentials]:
        ...

    def available(self) -> List[Provider]:
        return [p for p in Provider if self.get(p) is not None]

    def as_mapping(self) -> Dict[Provider, ProviderCredentials]:
        return {p: creds for p in Provider if (creds := self.get(p)) is not None}


class StaticCredentials(CredentialsSource):
    """Keys handed over directly, e.g. from the settings form."""

    def __init__(self, keys: Mapping):
        self._creds: Dict[Provider, ProviderCredentials] = {}
        for name, value in keys.items():
            if not value:
                continue
            creds = value if isinstance(value, ProviderCredentials) else ProviderCredentials(str(value))
            if creds.api_key:
                self._creds[Provider.parse(name)] = creds

    def get(self, provider: Provider) -> Optional[ProviderCredentials]:
        return self._creds.get(provider)


ENV_KEYS: Dict[Provider, Tuple[str, ...]] = {
    Provider.OPENAI: ("OPENAI_API_KEY",),
    Provider.CLAUDE: ("ANTHROPIC_API_KEY", "CLAUDE_API_KEY"),
    Provider.DEEPSEEK: ("DEEPSEEK_API_KEY",),
    Provider.GROK: ("XAI_API_KEY", "GROK_API_KEY"),
}


class EnvCredentials(CredentialsSource):
    """Reads keys from the environment (and a .env file if present)."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        if env is None:
            load_dotenv()
            env = os.environ
        self._env = env

    def get(self, provider: Provider) -> Optional[ProviderCredentials]:
        for var in ENV_KEYS[provider]:
            key = self._env.get(var)
            if key:
                return ProviderCredentials(api_key=key)
        return None
