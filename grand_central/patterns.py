"""
Pattern Engine: Semantic Breathing
===================================
Watches a discussion for topics that keep coming back and turns them into
suggestions for a specialized agent.

  new message ─► last 3 user messages ─► EmbeddingStore.query(0.8, 5)
                                               │
                        ≥2 matches ◄───────────┴──────────► fewer
                            │                                  │
          breath_count += 1, topic recorded,       every 8th message: a
          agent-creation Suggestion                "still monitoring" advisory

Detection is heuristic and depends on the embedding model, so the same
conversation can yield different topics under different embedders.
"""

import logging
import re
from collections import Counter
from typing import List, Optional, Sequence

from .config import GrandCentralConfig, load_config
from .memory import EmbedFn, EmbeddingStore
from .metrics import MetricsCollector
from .models import (
    AgentTemplate,
    ChatMessage,
    ConversationBreathState,
    MemoryMatch,
    MemoryMetadata,
    ProviderOutcome,
    Suggestion,
    SuggestionKind,
)

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "this topic"
_WORD_STRIP = re.compile(r"^\W+|\W+$")


class PatternEngine:
    """
    Usage:
        engine = PatternEngine(store, embed_fn, config)
        await engine.remember(outcomes, discussion.breath_state)
        suggestion = await engine.observe(discussion_id, message, history, breath_state)
    """

    def __init__(
        self,
        store: EmbeddingStore,
        embed_fn: EmbedFn,
        config: Optional[GrandCentralConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if embed_fn is None:
            raise TypeError("PatternEngine needs an embedding function")
        self.store = store
        self.embed_fn = embed_fn
        self.config = config or load_config()
        self.metrics = metrics

    # ── Ingestion ─────────────────────────────────────────────────

    async def remember(
        self, outcomes: Sequence[ProviderOutcome], breath_state: ConversationBreathState
    ) -> int:
        """Store every successful response; one bad embedding doesn't stop the rest."""
        stored = 0
        patterns = sorted(breath_state.detected_patterns)
        for outcome in outcomes:
            if not outcome.succeeded:
                continue
            metadata = MemoryMetadata(
                origin_provider=outcome.served_by.value,
                phase=breath_state.phase,
                breath_count=breath_state.breath_count,
                patterns=patterns,
            )
            try:
                await self.store.append(outcome.content, self.embed_fn, metadata)
                stored += 1
            except Exception as e:
                logger.error(f"Failed to store memory from {outcome.served_by.value}: {e}")
        logger.info(f"🧠 Stored {stored}/{len(outcomes)} responses in phase {breath_state.phase.value}")
        return stored

    # ── Observation ───────────────────────────────────────────────

    async def observe(
        self,
        discussion_id: str,
        new_message: ChatMessage,
        recent_messages: Sequence[ChatMessage],
        breath_state: ConversationBreathState,
    ) -> Optional[Suggestion]:
        """
        Look for a recurring topic around ``new_message``.

        ``recent_messages`` is the discussion history; the new message is
        added to it unless a message with the same id is already there.
        Mutates ``breath_state`` only when a pattern is detected.
        """
        cfg = self.config
        history = list(recent_messages)
        if all(m.id != new_message.id for m in history):
            history.append(new_message)
        message_count = len(history)
        window = history[-cfg.pattern_window:]

        if len(window) < cfg.pattern_min_messages:
            return None

        user_messages = [m for m in window if m.is_user][-cfg.pattern_query_messages:]
        matches: List[MemoryMatch] = []
        if user_messages:
            combined = " ".join(m.content for m in user_messages)
            matches = await self.store.query(
                combined,
                self.embed_fn,
                threshold=cfg.pattern_threshold,
                limit=cfg.pattern_limit,
            )
        logger.info(f"[Pattern] {discussion_id}: {len(matches)} semantic matches")

        if len(matches) >= cfg.pattern_min_matches:
            return self._breathe(discussion_id, matches, breath_state)

        if message_count > 0 and message_count % cfg.pattern_advisory_every == 0:
            return self._advisory(discussion_id, message_count)

        return None

    def _breathe(
        self,
        discussion_id: str,
        matches: List[MemoryMatch],
        breath_state: ConversationBreathState,
    ) -> Suggestion:
        topic = self.detect_topic(matches)
        confidence = min(1.0, len(matches) / 3)

        breath_state.breath_count += 1
        breath_state.detected_patterns.add(topic)
        logger.info(
            f"💨 Pattern detected in {discussion_id}: {topic} "
            f"(breath #{breath_state.breath_count}, confidence {confidence:.2f})"
        )

        if self.metrics is not None:
            self.metrics.record_pattern(topic)
            self.metrics.record_suggestion(SuggestionKind.AGENT_CREATION.value)

        return Suggestion(
            discussion_id=discussion_id,
            kind=SuggestionKind.AGENT_CREATION,
            topic=topic,
            confidence=confidence,
            content=(
                f"🧠 I notice you're exploring {topic}. Shall I crystallize a specialized "
                f"agent? (Confidence: {round(confidence * 100)}%)"
            ),
            proposed_agent_template=AgentTemplate(
                name=f"{topic[:1].upper()}{topic[1:]} Expert",
                focus=f"Specialized in {topic} discussions",
                system_prompt=(
                    f"You are an expert in {topic}. Provide helpful guidance for "
                    f"{topic}-related questions."
                ),
            ),
        )

    def _advisory(self, discussion_id: str, message_count: int) -> Suggestion:
        logger.info(f"[Pattern] Periodic advisory for {discussion_id} at {message_count} messages")
        if self.metrics is not None:
            self.metrics.record_suggestion(SuggestionKind.MONITORING.value)
        return Suggestion(
            discussion_id=discussion_id,
            kind=SuggestionKind.MONITORING,
            topic="monitoring",
            confidence=self.config.advisory_confidence,
            content=(
                f"🧠 I'm monitoring this discussion ({message_count} messages). Semantic "
                f"pattern detection is active. I'll suggest specialized agents when I "
                f"detect recurring topics."
            ),
        )

    def detect_topic(self, matches: Sequence[MemoryMatch]) -> str:
        """Most common pattern tag, else the first long word of the best match."""
        tags = Counter(tag for m in matches for tag in m.metadata.patterns if tag)
        if tags:
            return tags.most_common(1)[0][0]

        if not matches:
            return DEFAULT_TOPIC
        for raw in matches[0].content.lower().split():
            word = _WORD_STRIP.sub("", raw)
            if len(word) >= self.config.pattern_min_word_length:
                return word
        return DEFAULT_TOPIC


def breath_announcement(breath_count: int) -> ChatMessage:
    """Companion message announcing a completed breath."""
    return ChatMessage(
        sender="companion",
        content=f"💨 Breath #{breath_count} completed. The conversation deepens.",
    )
