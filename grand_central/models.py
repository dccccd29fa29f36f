"""
Grand Central Models
=====================
Pydantic models for the values the core hands back to its callers,
plus the enums every other module keys on.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ─────────────────────────────────────────────────────────

class Provider(str, Enum):
    """The closed set of text-generation backends."""
    OPENAI = "openai"
    CLAUDE = "claude"
    DEEPSEEK = "deepseek"
    GROK = "grok"

    @classmethod
    def parse(cls, value: "str | Provider") -> "Provider":
        """Accept enum members, canonical names and the UI's model aliases."""
        if isinstance(value, Provider):
            return value
        key = str(value).strip().lower()
        key = _PROVIDER_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown provider: {value!r}") from None


_PROVIDER_ALIASES = {
    "gpt4": "openai",
    "gpt-4": "openai",
    "anthropic": "claude",
    "xai": "grok",
}


class Phase(str, Enum):
    """Qualitative stage of a discussion. Any phase may be set externally."""
    PLASMA = "plasma"
    GAS = "gas"
    LIQUID = "liquid"
    SOLID = "solid"


class SuggestionKind(str, Enum):
    AGENT_CREATION = "agent_creation"
    MONITORING = "monitoring"


class ContextKind(str, Enum):
    FILE = "file"
    URL = "url"
    INSTRUCTION = "instruction"


# ── Conversation ──────────────────────────────────────────────────

class ChatMessage(BaseModel):
    """A single message in a discussion's history."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender: str = "user"                       # "user" or the responding provider/agent
    content: str
    provider: Optional[Provider] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_user(self) -> bool:
        return self.sender == "user"


class ContextItem(BaseModel):
    """Global or discussion-level context folded into the prompt."""
    kind: ContextKind
    name: str = ""
    content: str


class ConversationBreathState(BaseModel):
    """Breathing context attached to a discussion."""
    phase: Phase = Phase.PLASMA
    breath_count: int = Field(0, ge=0)
    detected_patterns: Set[str] = Field(default_factory=set)

    def set_phase(self, phase: "Phase | str") -> None:
        """Manual phase change; no transition order is enforced."""
        self.phase = Phase(phase)


# ── Fan-out Output ────────────────────────────────────────────────

class ErrorInfo(BaseModel):
    """Structured provider failure, safe to log and persist."""
    code: str
    detail: str
    provider: Provider
    degraded: bool = True
    timestamp: datetime = Field(default_factory=_utcnow)
    retry_count: Optional[int] = None


class ProviderOutcome(BaseModel):
    """Result for one requested provider slot of a dispatch."""
    provider: Provider                              # The slot that was requested
    content: str
    degraded: bool = False
    originating_provider: Optional[Provider] = None # Set when degraded
    served_by: Optional[Provider] = None            # None when nothing answered
    error: Optional[ErrorInfo] = None
    attempts: int = 0
    latency_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.served_by is not None

    @property
    def display_content(self) -> str:
        """Content with the user-visible degradation annotation."""
        if not self.degraded:
            return self.content
        if self.served_by is not None:
            return (
                f"⚠️ {self.provider.value} unavailable. "
                f"Response from {self.served_by.value}:\n\n{self.content}"
            )
        return f"⚠️ {self.provider.value} response unavailable: {self.content}"


# ── Pattern Engine Output ─────────────────────────────────────────

class AgentTemplate(BaseModel):
    """Specialized agent proposed for a recurring topic."""
    name: str
    focus: str
    system_prompt: str


class Suggestion(BaseModel):
    """Advisory emitted by the pattern engine; approval is the caller's job."""
    id: str = Field(default_factory=lambda: f"suggestion-{uuid.uuid4()}")
    discussion_id: str
    kind: SuggestionKind = SuggestionKind.AGENT_CREATION
    topic: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    content: str = ""
    proposed_agent_template: Optional[AgentTemplate] = None
    created_at: datetime = Field(default_factory=_utcnow)


class MemoryMetadata(BaseModel):
    """Provenance stored alongside every memory record."""
    origin_provider: Optional[str] = None
    phase: Phase = Phase.PLASMA
    breath_count: int = 0
    patterns: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)

    model_config = {"frozen": True}


class MemoryMatch(BaseModel):
    """A single similarity hit from the embedding store."""
    record_id: str
    content: str
    similarity: float
    metadata: MemoryMetadata

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()
