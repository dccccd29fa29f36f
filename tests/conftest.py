"""
Shared fakes: a controllable clock, a recording sleep, scripted provider
clients and embedding functions with hand-picked vectors.
"""

from typing import Dict, List

import pytest

from grand_central.circuit_breaker import CircuitBreakerRegistry
from grand_central.config import GrandCentralConfig
from grand_central.models import Provider


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that returns immediately and remembers each delay."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedClient:
    """Provider client double: returns ``reply`` or raises ``error`` every call."""

    def __init__(self, provider: Provider, reply: str = None, error: Exception = None):
        self.provider = provider
        self.reply = reply
        self.error = error
        self.calls = 0
        self.prompts: List[str] = []
        self.histories: List[list] = []

    async def complete(self, prompt, history=()):
        self.calls += 1
        self.prompts.append(prompt)
        self.histories.append(list(history))
        if self.error is not None:
            raise self.error
        return self.reply


class ClientBook:
    """client_factory that hands out one ScriptedClient per provider."""

    def __init__(self, clients: Dict[Provider, ScriptedClient]):
        self.clients = clients
        self.built: List[Provider] = []

    def __call__(self, provider, credentials, config):
        self.built.append(provider)
        return self.clients[provider]


class VectorTable:
    """Embedding function backed by a text → vector table."""

    def __init__(self, table: Dict[str, List[float]], default: List[float] = None):
        self.table = table
        self.default = default
        self.calls: List[str] = []

    async def __call__(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.table:
            return self.table[text]
        if self.default is None:
            raise KeyError(text)
        return self.default


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def config():
    return GrandCentralConfig()


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(failure_threshold=3, cooldown_s=30.0, clock=clock)
