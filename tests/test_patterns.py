import pytest

from conftest import VectorTable
from grand_central.config import GrandCentralConfig
from grand_central.memory import EmbeddingStore
from grand_central.metrics import MetricsCollector
from grand_central.models import (
    ChatMessage,
    ConversationBreathState,
    MemoryMatch,
    MemoryMetadata,
    Phase,
    Provider,
    ProviderOutcome,
    SuggestionKind,
)
from grand_central.patterns import DEFAULT_TOPIC, PatternEngine, breath_announcement

SIMILAR = [1.0, 0.0]
DISSIMILAR = [0.0, 1.0]


def user_messages(*texts):
    return [ChatMessage(content=t) for t in texts]


@pytest.fixture
def embed():
    return VectorTable({"noise": DISSIMILAR}, default=SIMILAR)


@pytest.fixture
def engine(embed):
    return PatternEngine(EmbeddingStore(), embed, GrandCentralConfig(), MetricsCollector())


async def test_two_matches_take_a_breath(engine, embed):
    await engine.store.append("Kubernetes operators reconcile desired state", embed)
    await engine.store.append("Operators watch custom resources", embed)
    state = ConversationBreathState()
    history = user_messages("how do operators work", "what is reconcile", "show me a CRD")

    suggestion = await engine.observe("d1", ChatMessage(content="and finalizers?"), history, state)

    assert state.breath_count == 1
    assert suggestion.kind == SuggestionKind.AGENT_CREATION
    assert suggestion.confidence == pytest.approx(2 / 3)
    assert suggestion.topic == "kubernetes"
    assert "kubernetes" in state.detected_patterns
    assert suggestion.proposed_agent_template.name == "Kubernetes Expert"
    assert "(Confidence: 67%)" in suggestion.content
    assert engine.metrics.patterns_detected.get("kubernetes") == 1


async def test_query_uses_last_three_user_messages(engine, embed):
    history = user_messages("one", "two", "three") + [ChatMessage(sender="claude", content="reply")]
    await engine.store.append("seed", embed)

    await engine.observe("d1", ChatMessage(content="four"), history, ConversationBreathState())

    assert embed.calls[-1] == "two three four"


async def test_single_match_leaves_state_alone(engine, embed):
    await engine.store.append("relevant content here", embed)
    await engine.store.append("noise", embed)
    state = ConversationBreathState()
    history = user_messages("a", "b", "c")

    suggestion = await engine.observe("d1", ChatMessage(content="d"), history, state)

    assert suggestion is None
    assert state.breath_count == 0
    assert state.detected_patterns == set()


async def test_short_discussions_are_skipped(engine, embed):
    await engine.store.append("something", embed)
    state = ConversationBreathState()

    suggestion = await engine.observe("d1", ChatMessage(content="hi"), user_messages("hello"), state)

    assert suggestion is None
    assert embed.calls == ["something"]


async def test_periodic_advisory_on_eighth_message(engine):
    history = user_messages(*[f"m{i}" for i in range(7)])

    suggestion = await engine.observe("d1", ChatMessage(content="m7"), history, ConversationBreathState())

    assert suggestion.kind == SuggestionKind.MONITORING
    assert suggestion.confidence == pytest.approx(0.1)
    assert "8 messages" in suggestion.content
    assert suggestion.proposed_agent_template is None


async def test_new_message_already_in_history_is_not_counted_twice(engine):
    new = ChatMessage(content="m6")
    history = user_messages(*[f"m{i}" for i in range(6)]) + [new, ChatMessage(sender="grok", content="r")]

    # 8 messages including the new one: advisory fires
    assert await engine.observe("d1", new, history, ConversationBreathState()) is not None
    # 7 messages: nothing
    assert await engine.observe("d1", new, history[:-1], ConversationBreathState()) is None


async def test_recorded_pattern_tags_drive_topic(engine, embed):
    meta = MemoryMetadata(patterns=["rust ownership"])
    await engine.store.append("borrow checker", embed, meta)
    await engine.store.append("lifetimes", embed, meta)
    state = ConversationBreathState(detected_patterns={"rust ownership"})

    suggestion = await engine.observe("d1", ChatMessage(content="x"), user_messages("a", "b"), state)

    assert suggestion.topic == "rust ownership"
    assert state.breath_count == 1


class TestDetectTopic:

    def _match(self, content, patterns=()):
        return MemoryMatch(
            record_id="r", content=content, similarity=0.9,
            metadata=MemoryMetadata(patterns=list(patterns)),
        )

    def test_most_common_tag(self, engine):
        matches = [self._match("x", ["alpha", "beta"]), self._match("y", ["beta"])]
        assert engine.detect_topic(matches) == "beta"

    def test_first_long_word_with_punctuation_stripped(self, engine):
        assert engine.detect_topic([self._match("So, (graphs) rule")]) == "graphs"

    def test_default_when_nothing_fits(self, engine):
        assert engine.detect_topic([self._match("a b c")]) == DEFAULT_TOPIC
        assert engine.detect_topic([]) == DEFAULT_TOPIC


class TestRemember:

    async def test_stores_only_successful_outcomes(self, engine):
        state = ConversationBreathState(phase=Phase.GAS, breath_count=2, detected_patterns={"b", "a"})
        outcomes = [
            ProviderOutcome(provider=Provider.OPENAI, content="answer", served_by=Provider.OPENAI),
            ProviderOutcome(
                provider=Provider.CLAUDE, content="covered", degraded=True,
                originating_provider=Provider.CLAUDE, served_by=Provider.GROK,
            ),
            ProviderOutcome(provider=Provider.DEEPSEEK, content="boom", degraded=True),
        ]

        assert await engine.remember(outcomes, state) == 2

        records = engine.store.recent(5)
        assert [r.metadata.origin_provider for r in records] == ["openai", "grok"]
        assert all(r.metadata.phase == Phase.GAS for r in records)
        assert records[0].metadata.breath_count == 2
        assert records[0].metadata.patterns == ["a", "b"]

    async def test_embedding_failure_does_not_stop_the_rest(self):
        embed = VectorTable({"good": SIMILAR})
        engine = PatternEngine(EmbeddingStore(), embed, GrandCentralConfig())
        outcomes = [
            ProviderOutcome(provider=Provider.OPENAI, content="bad", served_by=Provider.OPENAI),
            ProviderOutcome(provider=Provider.CLAUDE, content="good", served_by=Provider.CLAUDE),
        ]
        assert await engine.remember(outcomes, ConversationBreathState()) == 1


def test_engine_requires_embed_fn():
    with pytest.raises(TypeError):
        PatternEngine(EmbeddingStore(), None, GrandCentralConfig())


def test_breath_announcement():
    msg = breath_announcement(3)
    assert msg.sender == "companion"
    assert "Breath #3" in msg.content


def test_breath_state_phase_can_be_set_freely():
    state = ConversationBreathState()
    state.set_phase("solid")
    state.set_phase(Phase.PLASMA)
    assert state.phase == Phase.PLASMA
