import pytest

from grand_central.fallback import FALLBACK_HIERARCHY, FallbackRouter
from grand_central.models import Provider

ALL = list(Provider)


def test_hierarchy_lists_every_other_provider():
    for provider, chain in FALLBACK_HIERARCHY.items():
        assert provider not in chain
        assert set(chain) == set(Provider) - {provider}


def test_first_preference_wins(breakers):
    router = FallbackRouter(breakers)
    assert router.next_fallback(Provider.OPENAI, ALL) == Provider.CLAUDE
    assert router.next_fallback(Provider.CLAUDE, ALL) == Provider.OPENAI
    assert router.next_fallback(Provider.GROK, ALL) == Provider.OPENAI


def test_skips_unavailable_providers(breakers):
    router = FallbackRouter(breakers)
    assert router.next_fallback(Provider.OPENAI, [Provider.GROK]) == Provider.GROK


def test_skips_open_breakers(breakers):
    for _ in range(3):
        breakers.record_failure(Provider.CLAUDE)
    router = FallbackRouter(breakers)
    assert router.next_fallback(Provider.OPENAI, ALL) == Provider.DEEPSEEK


def test_none_when_nothing_eligible(breakers):
    router = FallbackRouter(breakers)
    assert router.next_fallback(Provider.DEEPSEEK, []) is None
    assert router.next_fallback(Provider.DEEPSEEK, [Provider.DEEPSEEK]) is None


def test_incomplete_hierarchy_is_rejected(breakers):
    with pytest.raises(ValueError):
        FallbackRouter(breakers, {Provider.OPENAI: (Provider.CLAUDE,)})
