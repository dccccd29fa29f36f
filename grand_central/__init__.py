"""
Grand Central Core
===================
Multi-provider fan-out with per-provider resilience, plus semantic
pattern detection over the accumulated responses.

Architecture:
- config.py          → Configuration, provider definitions, env overrides
- models.py          → Pydantic models and enums (outcomes, suggestions, breath state)
- errors.py          → Error taxonomy + heuristic classification
- circuit_breaker.py → Per-provider circuit breakers (injectable registry)
- retry.py           → Bounded exponential-backoff retry
- fallback.py        → Static fallback hierarchy
- providers.py       → One httpx client per provider
- orchestrator.py    → Concurrent fan-out with fallback chains
- memory.py          → Embedding store + cosine similarity
- embeddings.py      → Embedding functions (OpenAI, deterministic hash)
- patterns.py        → Breath/phase pattern engine
- metrics.py         → In-memory metrics (counters, histograms)
- storage.py         → Persistence seam + in-memory store
- credentials.py     → Credential sources
- workspace.py       → Message flow for the HTTP layer
"""

from .config import PROVIDERS, GrandCentralConfig, load_config, setup_logging
from .models import (
    AgentTemplate,
    ChatMessage,
    ContextItem,
    ConversationBreathState,
    Phase,
    Provider,
    ProviderOutcome,
    Suggestion,
    SuggestionKind,
)
from .errors import (
    CircuitOpenError,
    EmbeddingDimensionMismatch,
    ErrorCode,
    ProviderError,
    classify_error,
)
from .circuit_breaker import CBState, CircuitBreaker, CircuitBreakerRegistry
from .retry import RetryExecutor
from .fallback import FALLBACK_HIERARCHY, FallbackRouter
from .providers import ProviderClient, build_client
from .orchestrator import Orchestrator, build_prompt
from .memory import EmbeddingStore, MemoryRecord, cosine_similarity
from .embeddings import HashEmbedder, OpenAIEmbedder
from .patterns import PatternEngine
from .metrics import MetricsCollector
from .credentials import EnvCredentials, ProviderCredentials, StaticCredentials
from .storage import DiscussionStore, InMemoryDiscussionStore
from .workspace import Workspace

__version__ = "1.0.0"

__all__ = [
    "PROVIDERS",
    "GrandCentralConfig",
    "load_config",
    "setup_logging",
    "AgentTemplate",
    "ChatMessage",
    "ContextItem",
    "ConversationBreathState",
    "Phase",
    "Provider",
    "ProviderOutcome",
    "Suggestion",
    "SuggestionKind",
    "CircuitOpenError",
    "EmbeddingDimensionMismatch",
    "ErrorCode",
    "ProviderError",
    "classify_error",
    "CBState",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "RetryExecutor",
    "FALLBACK_HIERARCHY",
    "FallbackRouter",
    "ProviderClient",
    "build_client",
    "Orchestrator",
    "build_prompt",
    "EmbeddingStore",
    "MemoryRecord",
    "cosine_similarity",
    "HashEmbedder",
    "OpenAIEmbedder",
    "PatternEngine",
    "MetricsCollector",
    "EnvCredentials",
    "ProviderCredentials",
    "StaticCredentials",
    "DiscussionStore",
    "InMemoryDiscussionStore",
    "Workspace",
]
