"""
Static fallback hierarchy: which provider stands in when another fails.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

from .circuit_breaker import CircuitBreakerRegistry
from .models import Provider

logger = logging.getLogger(__name__)

# Every provider maps to an ordered preference list of the other three.
FALLBACK_HIERARCHY: Dict[Provider, Tuple[Provider, ...]] = {
    Provider.OPENAI: (Provider.CLAUDE, Provider.DEEPSEEK, Provider.GROK),
    Provider.CLAUDE: (Provider.OPENAI, Provider.DEEPSEEK, Provider.GROK),
    Provider.DEEPSEEK: (Provider.OPENAI, Provider.CLAUDE, Provider.GROK),
    Provider.GROK: (Provider.OPENAI, Provider.CLAUDE, Provider.DEEPSEEK),
}


class FallbackRouter:
    """Picks a substitute provider. Stateless aside from reading the breakers."""

    def __init__(
        self,
        breakers: CircuitBreakerRegistry,
        hierarchy: Dict[Provider, Tuple[Provider, ...]] = FALLBACK_HIERARCHY,
    ):
        missing = set(Provider) - set(hierarchy)
        if missing:
            raise ValueError(
                f"Fallback hierarchy missing providers: {sorted(p.value for p in missing)}"
            )
        self.breakers = breakers
        self.hierarchy = hierarchy

    def next_fallback(
        self, failed_provider: Provider, available_providers: Iterable[Provider]
    ) -> Optional[Provider]:
        """First preferred candidate that has credentials and a passable breaker."""
        available = set(available_providers)
        for candidate in self.hierarchy[failed_provider]:
            if candidate in available and self.breakers.may_attempt(candidate):
                logger.info(
                    f"🔀 Using {candidate.value} as fallback for {failed_provider.value}"
                )
                return candidate
        logger.info(f"No fallback available for {failed_provider.value}")
        return None
