"""Process-wide cache of configured LLM clients.

Bots that share a ``(model, temperature, max_tokens)`` triple share one
client instance.  The cache is an ``LRUCache`` from cachetools so a
long-running server with many distinct configurations stays bounded.

The lookup is insert-if-absent with no ``await`` between the check and the
insert, so two coroutines asking for the same key on the one event loop
always end up with the same instance.

Each client owns an HTTP connection pool.  A client pushed out of the LRU
is closed in a background task on the running loop; outside a loop it is
parked until :meth:`LLMClientCache.aclose` runs at shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog
from cachetools import LRUCache

from src.interfaces.llm_provider import ILLMProvider
from src.models.bot import BotSettings

logger = structlog.get_logger(logger_name=__name__)

# (model, temperature, max_tokens)
LLMClientKey = tuple[str, float, int]
LLMClientFactory = Callable[[str, float, int], ILLMProvider]


class _EvictingLRUCache(LRUCache):
    """``LRUCache`` that reports every entry it drops for capacity."""

    def __init__(self, maxsize: int, on_evict: Callable[[LLMClientKey, ILLMProvider], None]) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def popitem(self) -> tuple[LLMClientKey, ILLMProvider]:
        key, client = super().popitem()
        self._on_evict(key, client)
        return key, client


class LLMClientCache:
    """Hands out one :class:`ILLMProvider` per distinct configuration."""

    def __init__(self, factory: LLMClientFactory, max_size: int = 32) -> None:
        self._factory = factory
        self._clients = _EvictingLRUCache(maxsize=max_size, on_evict=self._evicted)
        self._retired: list[ILLMProvider] = []
        self._closing: set[asyncio.Task[None]] = set()

    @staticmethod
    def key_for(settings: BotSettings) -> LLMClientKey:
        return (settings.model, float(settings.temperature), int(settings.max_tokens))

    def get(self, settings: BotSettings) -> ILLMProvider:
        """Return the cached client for *settings*, creating it on first use."""
        key = self.key_for(settings)
        client = self._clients.get(key)
        if client is None:
            client = self._factory(*key)
            self._clients[key] = client
            logger.info(
                "llm_client_created",
                model=key[0],
                temperature=key[1],
                max_tokens=key[2],
                provider=client.get_provider_name(),
            )
        return client

    def __len__(self) -> int:
        return len(self._clients)

    def clear(self) -> None:
        """Drop every cached client; each one is closed like an eviction."""
        for client in list(self._clients.values()):
            self._retire(client)
        self._clients.clear()

    async def aclose(self) -> None:
        """Close every client this cache still holds or has evicted."""
        clients = [*self._clients.values(), *self._retired]
        self._clients.clear()
        self._retired = []
        for client in clients:
            await client.aclose()
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)
        logger.info("llm_clients_closed", count=len(clients))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evicted(self, key: LLMClientKey, client: ILLMProvider) -> None:
        logger.info("llm_client_evicted", model=key[0], temperature=key[1], max_tokens=key[2])
        self._retire(client)

    def _retire(self, client: ILLMProvider) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._retired.append(client)
            return
        task = loop.create_task(client.aclose())
        self._closing.add(task)
        task.add_done_callback(self._close_finished)

    def _close_finished(self, task: asyncio.Task[None]) -> None:
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("llm_client_close_failed", error=str(task.exception()))
