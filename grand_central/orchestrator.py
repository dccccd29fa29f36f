"""
Fan-out Orchestrator
=====================
Sends one user message to every enabled provider at once and collects
one outcome per provider slot.

┌──────────────┐     ┌───────────────┐     ┌────────────────┐
│ dispatch()   │────►│ provider task │────►│ RetryExecutor  │──► ProviderClient
│ (gather all) │     │ (one per slot)│     │ (breaker gate) │
└──────────────┘     └───────┬───────┘     └────────────────┘
                             │ terminal failure
                             ▼
                     ┌────────────────┐
                     │ FallbackRouter │──► next untried provider, or give up
                     └────────────────┘

A failing provider never raises out of dispatch(): its slot comes back as
a degraded outcome carrying either a substitute's answer or the error text.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from .circuit_breaker import CircuitBreakerRegistry
from .config import GrandCentralConfig, load_config
from .credentials import CredentialsSource, ProviderCredentials, StaticCredentials
from .errors import ProviderError, log_structured_error, to_error_info
from .fallback import FallbackRouter
from .metrics import MetricsCollector
from .models import ChatMessage, ContextItem, ContextKind, ProviderOutcome, Provider
from .providers import History, ProviderClient, build_client
from .retry import RetryAttempt, RetryExecutor

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Provider, Optional[ProviderCredentials], GrandCentralConfig], ProviderClient]
Credentials = Union[CredentialsSource, Mapping]


# ── Prompt building ───────────────────────────────────────────────

def _format_global_item(item: ContextItem) -> str:
    if item.kind == ContextKind.FILE:
        return f'File "{item.name or "Uploaded File"}":\n{item.content}'
    if item.kind == ContextKind.URL:
        return f"Reference URL: {item.content}"
    return f"Global Instructions: {item.content}"


def _format_local_item(item: ContextItem) -> str:
    if item.kind == ContextKind.FILE:
        return f'File "{item.name}":\n{item.content}'
    return f'Link "{item.name}": {item.content}'


def build_prompt(
    message: str,
    context: Sequence[ContextItem] = (),
    global_context: Sequence[ContextItem] = (),
) -> str:
    """Global context, then discussion context, then the user's message."""
    parts = []
    if global_context:
        body = "\n\n".join(_format_global_item(i) for i in global_context)
        parts.append(f"Global Context:\n{body}\n\n")
    if context:
        body = "\n\n".join(_format_local_item(i) for i in context)
        parts.append(f"Discussion Context:\n{body}\n\n")
    parts.append(f"User: {message}")
    return "".join(parts)


def to_history(messages: Sequence[ChatMessage], limit: int = 10) -> List[Dict[str, str]]:
    recent = list(messages)[-limit:] if limit else []
    return [
        {"role": "user" if m.is_user else "assistant", "content": m.content}
        for m in recent
    ]


def _normalize_credentials(credentials: Credentials) -> Dict[Provider, ProviderCredentials]:
    if isinstance(credentials, CredentialsSource):
        return credentials.as_mapping()
    return StaticCredentials(credentials).as_mapping()


# ── Orchestrator ──────────────────────────────────────────────────

class Orchestrator:
    """
    The only place failure, fallback and circuit-breaker logic is invoked.

    Usage:
        orch = Orchestrator(config, breakers=CircuitBreakerRegistry())
        outcomes = await orch.dispatch("hi", [Provider.OPENAI, Provider.CLAUDE], creds)
    """

    def __init__(
        self,
        config: Optional[GrandCentralConfig] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        client_factory: ClientFactory = build_client,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or load_config()
        self.breakers = breakers or CircuitBreakerRegistry.from_config(self.config)
        self.metrics = metrics or MetricsCollector(self.config.metrics_buffer_size)
        self.retry = RetryExecutor.from_config(self.config, self.breakers, sleep=sleep)
        self.router = FallbackRouter(self.breakers)
        self._client_factory = client_factory
        self._clock = clock

    async def dispatch(
        self,
        message: str,
        enabled_providers: Iterable[Union[Provider, str]],
        credentials: Credentials,
        history: Sequence[ChatMessage] = (),
        context: Sequence[ContextItem] = (),
        global_context: Sequence[ContextItem] = (),
    ) -> List[ProviderOutcome]:
        """
        Fan ``message`` out to every enabled provider that has credentials.

        Returns one outcome per dispatched slot, in no guaranteed order;
        match them to providers by ``outcome.provider``.
        """
        start = self._clock()
        creds = _normalize_credentials(credentials)
        available = [p for p in Provider if p in creds]

        slots: List[Provider] = []
        for name in enabled_providers:
            provider = Provider.parse(name)
            if provider in slots:
                continue
            if provider not in creds:
                logger.info(f"Skipping {provider.value}: no credentials configured")
                continue
            slots.append(provider)

        if not slots:
            logger.warning("No enabled provider has credentials; nothing dispatched")
            return []

        prompt = build_prompt(message, context, global_context)
        conversation = to_history(history, self.config.history_limit)
        deadline = (
            start + self.config.dispatch_deadline_s
            if self.config.dispatch_deadline_s > 0 else None
        )

        logger.info(f"📡 Dispatching to {[p.value for p in slots]}")
        results = await asyncio.gather(
            *(self._run_chain(p, prompt, conversation, creds, available, deadline) for p in slots),
            return_exceptions=True,
        )

        outcomes: List[ProviderOutcome] = []
        for provider, result in zip(slots, results):
            if isinstance(result, BaseException):
                # Unexpected failure inside one provider task; contain it to that slot.
                logger.error(f"Provider task for {provider.value} crashed: {result!r}")
                self.metrics.record_degraded(provider.value)
                info = to_error_info(result, provider)
                log_structured_error(info)
                result = ProviderOutcome(
                    provider=provider,
                    content=info.detail,
                    degraded=True,
                    originating_provider=provider,
                    error=info,
                )
            outcomes.append(result)

        elapsed_ms = (self._clock() - start) * 1000
        degraded = sum(1 for o in outcomes if o.degraded)
        self.metrics.record_dispatch(len(outcomes), degraded, elapsed_ms)
        logger.info(
            f"📬 Dispatch complete: {len(outcomes) - degraded} ok, {degraded} degraded "
            f"in {elapsed_ms:.0f}ms"
        )
        return outcomes

    async def _call(self, client: ProviderClient, prompt: str, history: History) -> str:
        return await asyncio.wait_for(
            client.complete(prompt, history), timeout=self.config.call_timeout_s
        )

    async def _run_chain(
        self,
        requested: Provider,
        prompt: str,
        history: History,
        creds: Dict[Provider, ProviderCredentials],
        available: List[Provider],
        deadline: Optional[float],
    ) -> ProviderOutcome:
        """Requested provider first, then fallbacks, each tried at most once."""
        chain_start = self._clock()
        tried: Set[Provider] = {requested}
        current = requested
        total_attempts = 0
        last_error: Optional[ProviderError] = None

        while True:
            client = self._client_factory(current, creds.get(current), self.config)
            attempts: List[RetryAttempt] = []
            call_start = self._clock()
            try:
                content = await self.retry.execute(
                    current, lambda: self._call(client, prompt, history), attempts
                )
            except ProviderError as e:
                last_error = e
                total_attempts += len(attempts)
                self.metrics.record_llm_call(
                    current.value, (self._clock() - call_start) * 1000, success=False
                )
                log_structured_error(to_error_info(e, current, retry_count=len(attempts)))
            else:
                total_attempts += len(attempts) + 1
                self.metrics.record_llm_call(
                    current.value, (self._clock() - call_start) * 1000, success=True
                )
                degraded = current != requested
                if degraded:
                    self.metrics.record_fallback(requested.value, current.value)
                    self.metrics.record_degraded(requested.value)
                return ProviderOutcome(
                    provider=requested,
                    content=content,
                    degraded=degraded,
                    originating_provider=requested if degraded else None,
                    served_by=current,
                    attempts=total_attempts,
                    latency_ms=round((self._clock() - chain_start) * 1000, 1),
                )

            if deadline is not None and self._clock() >= deadline:
                logger.warning(
                    f"⏱️ Dispatch deadline passed; no further fallback for {requested.value}"
                )
                break

            candidates = [p for p in available if p not in tried]
            substitute = self.router.next_fallback(current, candidates)
            if substitute is None:
                break
            tried.add(substitute)
            current = substitute

        self.metrics.record_degraded(requested.value)
        info = to_error_info(last_error, requested, retry_count=total_attempts)
        return ProviderOutcome(
            provider=requested,
            content=last_error.detail,
            degraded=True,
            originating_provider=requested,
            error=info,
            attempts=total_attempts,
            latency_ms=round((self._clock() - chain_start) * 1000, 1),
        )
