"""
Workspace
==========
What the HTTP layer calls for "user posted a message in a discussion":

1. persist the user message
2. fan out to the enabled providers and persist every outcome
3. return the outcomes right away
4. in the background: remember the responses, look for patterns,
   save the breath state and any suggestion
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Set, Union

from .circuit_breaker import CircuitBreakerRegistry
from .config import GrandCentralConfig, load_config, setup_logging
from .credentials import CredentialsSource, EnvCredentials
from .embeddings import OpenAIEmbedder
from .memory import EmbedFn, EmbeddingStore
from .metrics import MetricsCollector
from .models import (
    AgentTemplate,
    ChatMessage,
    ContextItem,
    Provider,
    ProviderOutcome,
    Suggestion,
    SuggestionKind,
)
from .orchestrator import Orchestrator
from .patterns import PatternEngine, breath_announcement
from .storage import DiscussionStore, InMemoryDiscussionStore

logger = logging.getLogger(__name__)


class Workspace:

    def __init__(
        self,
        store: DiscussionStore,
        credentials: CredentialsSource,
        orchestrator: Orchestrator,
        patterns: Optional[PatternEngine] = None,
    ):
        self.store = store
        self.credentials = credentials
        self.orchestrator = orchestrator
        self.patterns = patterns
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def create(
        cls,
        credentials: CredentialsSource,
        embed_fn: Optional[EmbedFn] = None,
        store: Optional[DiscussionStore] = None,
        config: Optional[GrandCentralConfig] = None,
        **orchestrator_kwargs,
    ) -> "Workspace":
        """Wire every component from one config with shared metrics."""
        config = config or load_config()
        metrics = MetricsCollector(config.metrics_buffer_size)
        breakers = orchestrator_kwargs.pop("breakers", None) or CircuitBreakerRegistry.from_config(config)
        orchestrator = Orchestrator(config, breakers=breakers, metrics=metrics, **orchestrator_kwargs)
        patterns = None
        if embed_fn is not None:
            store_dim = getattr(embed_fn, "dimension", None)
            patterns = PatternEngine(EmbeddingStore(dimension=store_dim), embed_fn, config, metrics)
        else:
            logger.info("[Pattern] Skipped - no embedding function configured")
        return cls(store or InMemoryDiscussionStore(), credentials, orchestrator, patterns)

    @classmethod
    def from_env(cls, store: Optional[DiscussionStore] = None) -> "Workspace":
        """Keys from the environment; embeddings through OpenAI when its key is set."""
        config = load_config()
        setup_logging(config.log_level)
        credentials = EnvCredentials()
        openai = credentials.get(Provider.OPENAI)
        embed_fn = OpenAIEmbedder.from_config(config, openai.api_key) if openai else None
        return cls.create(credentials, embed_fn=embed_fn, store=store, config=config)

    # ── Messaging ─────────────────────────────────────────────────

    async def send_message(
        self,
        discussion_id: str,
        content: str,
        enabled_providers: Iterable[Union[Provider, str]],
        context: Sequence[ContextItem] = (),
        global_context: Sequence[ContextItem] = (),
    ) -> List[ProviderOutcome]:
        if not content or not content.strip():
            raise ValueError("Message content is required")

        history = await self.store.list_messages(discussion_id)
        user_message = await self.store.add_message(
            discussion_id, ChatMessage(sender="user", content=content)
        )

        outcomes = await self.orchestrator.dispatch(
            content,
            enabled_providers,
            self.credentials,
            history=history,
            context=context,
            global_context=global_context,
        )
        for outcome in outcomes:
            await self.store.add_message(discussion_id, ChatMessage(
                sender=outcome.provider.value,
                content=outcome.display_content,
                provider=outcome.served_by or outcome.provider,
            ))

        if self.patterns is not None:
            self._spawn(self._after_dispatch(discussion_id, user_message, outcomes))
        return outcomes

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Pattern monitoring error (non-blocking): {exc!r}")

    async def _after_dispatch(
        self,
        discussion_id: str,
        user_message: ChatMessage,
        outcomes: List[ProviderOutcome],
    ) -> Optional[Suggestion]:
        state = await self.store.get_breath_state(discussion_id)
        await self.patterns.remember(outcomes, state)

        breath_before = state.breath_count
        messages = await self.store.list_messages(discussion_id)
        suggestion = await self.patterns.observe(discussion_id, user_message, messages, state)
        if suggestion is None:
            return None

        if state.breath_count != breath_before:
            await self.store.save_breath_state(discussion_id, state)
            await self.store.add_message(discussion_id, breath_announcement(state.breath_count))
        await self.store.add_suggestion(suggestion)
        await self.store.add_message(discussion_id, ChatMessage(
            sender="companion", content=suggestion.content,
        ))
        return suggestion

    async def drain(self) -> None:
        """Wait for pending background work (shutdown, tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Suggestions ───────────────────────────────────────────────

    async def approve_suggestion(
        self, suggestion_id: str, approved: bool
    ) -> Optional[AgentTemplate]:
        """Template to create an agent from, or None if declined or unknown."""
        if not approved:
            logger.info(f"Agent creation cancelled for {suggestion_id}")
            return None
        suggestion = await self.store.get_suggestion(suggestion_id)
        if suggestion is None or suggestion.kind != SuggestionKind.AGENT_CREATION:
            logger.warning(f"Suggestion {suggestion_id} not found or not actionable")
            return None
        return suggestion.proposed_agent_template

    # ── Monitoring ────────────────────────────────────────────────

    def circuit_status(self) -> dict:
        return self.orchestrator.breakers.status()

    def metrics_summary(self) -> dict:
        summary = self.orchestrator.metrics.summary()
        summary["circuit_trips"] = {
            name: status["stats"]["trips"] for name, status in self.circuit_status().items()
        }
        if self.patterns is not None:
            summary["memory"] = self.patterns.store.stats()
        return summary
