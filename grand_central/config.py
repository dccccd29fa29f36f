"""
Grand Central Configuration
============================
Centralized configuration with environment variable overrides.
All magic numbers, thresholds, and provider endpoints live here.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .models import Provider

load_dotenv()


# ── Provider Endpoints ───────────────────────────────────────────

@dataclass(frozen=True)
class ProviderDefinition:
    """Static description of one text-generation backend."""
    provider: Provider
    label: str
    base_url: str
    model: str
    max_tokens: int = 1000
    temperature: float = 0.7
    system_prompt: str = (
        "You are a helpful AI assistant in a collaborative workspace. Provide "
        "thoughtful, relevant responses based on the context and conversation history."
    )
    role_instruction: str = ""   # Appended to system prompt to keep responses distinct


PROVIDERS: Dict[Provider, ProviderDefinition] = {
    Provider.OPENAI: ProviderDefinition(
        provider=Provider.OPENAI,
        label="GPT-4",
        base_url="https://api.openai.com/v1",
        model="gpt-4-turbo",
        role_instruction="Be practical and implementation-focused.",
    ),
    Provider.CLAUDE: ProviderDefinition(
        provider=Provider.CLAUDE,
        label="Claude",
        base_url="https://api.anthropic.com/v1",
        model="claude-3-5-sonnet-20241022",
        system_prompt=(
            "You are Claude, a helpful AI assistant in a collaborative workspace. Provide "
            "thoughtful, relevant responses based on the context and conversation history."
        ),
        role_instruction="Focus on patterns and deeper connections.",
    ),
    Provider.DEEPSEEK: ProviderDefinition(
        provider=Provider.DEEPSEEK,
        label="DeepSeek",
        base_url="https://api.deepseek.com",
        model="deepseek-chat",
        system_prompt=(
            "You are DeepSeek, a helpful AI assistant in a collaborative workspace. Provide "
            "thoughtful, relevant responses based on the context and conversation history."
        ),
        role_instruction="Analyze critically and suggest alternatives.",
    ),
    Provider.GROK: ProviderDefinition(
        provider=Provider.GROK,
        label="Grok",
        base_url="https://api.x.ai/v1",
        model="grok-4-latest",
        max_tokens=2000,
        system_prompt=(
            "You are the Efficiency Optimizer. Focus on metrics, rapid prototyping, "
            "and cutting through abstractions. Measure everything. Keep it real."
        ),
    ),
}


# ── Core Config ──────────────────────────────────────────────────

@dataclass(frozen=True)
class GrandCentralConfig:
    """Tuning knobs for resilience, fan-out and pattern detection."""

    # Circuit breaker
    cb_failure_threshold: int = 3         # Consecutive failures before opening
    cb_cooldown_s: float = 30.0           # Seconds before a half-open probe

    # Retry
    retry_max_retries: int = 3            # 3 retries → 4 attempts
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 10.0

    # Fan-out
    call_timeout_s: float = 30.0          # Per underlying provider call
    dispatch_deadline_s: float = 0.0      # 0 = no overall deadline for fallback hops
    history_limit: int = 10               # Messages handed to the router
    client_history_limit: int = 8         # Messages each client actually sends

    # Semantic memory
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    embedding_base_url: str = "https://api.openai.com/v1"

    # Pattern engine
    pattern_threshold: float = 0.8        # Cosine similarity cut-off
    pattern_limit: int = 5                # Max matches per query
    pattern_min_matches: int = 2          # Matches needed to take a breath
    pattern_min_messages: int = 3         # Skip discussions shorter than this
    pattern_query_messages: int = 3       # Last N user messages form the query
    pattern_window: int = 10              # Recent messages considered
    pattern_advisory_every: int = 8       # Periodic "still monitoring" advisory
    pattern_min_word_length: int = 5      # Fallback topic word must be at least this long
    advisory_confidence: float = 0.1

    # Metrics
    metrics_buffer_size: int = 1000

    # Logging
    log_level: str = "INFO"

    providers: Dict[Provider, ProviderDefinition] = field(
        default_factory=lambda: dict(PROVIDERS)
    )


def load_config() -> GrandCentralConfig:
    """Load config with environment variable overrides."""
    overrides = {}
    env_map = {
        "GC_CB_FAILURE_THRESHOLD": ("cb_failure_threshold", int),
        "GC_CB_COOLDOWN": ("cb_cooldown_s", float),
        "GC_RETRY_MAX_RETRIES": ("retry_max_retries", int),
        "GC_RETRY_BASE_DELAY": ("retry_base_delay_s", float),
        "GC_RETRY_MAX_DELAY": ("retry_max_delay_s", float),
        "GC_CALL_TIMEOUT": ("call_timeout_s", float),
        "GC_DISPATCH_DEADLINE": ("dispatch_deadline_s", float),
        "GC_EMBEDDING_MODEL": ("embedding_model", str),
        "GC_EMBEDDING_DIMENSION": ("embedding_dimension", int),
        "GC_PATTERN_THRESHOLD": ("pattern_threshold", float),
        "GC_PATTERN_LIMIT": ("pattern_limit", int),
        "GC_PATTERN_MIN_MATCHES": ("pattern_min_matches", int),
        "GC_PATTERN_ADVISORY_EVERY": ("pattern_advisory_every", int),
        "GC_LOG_LEVEL": ("log_level", str),
    }
    for env_key, (field_name, cast_fn) in env_map.items():
        val = os.getenv(env_key)
        if val is not None:
            try:
                overrides[field_name] = cast_fn(val)
            except (ValueError, TypeError):
                pass
    return GrandCentralConfig(**overrides)


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging the same way across entry points (GC_LOG_LEVEL by default)."""
    level = level or load_config().log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
