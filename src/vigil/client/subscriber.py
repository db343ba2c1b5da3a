"""Dashboard session: push-triggered invalidation plus a polling backstop.

Push events are treated purely as "this domain changed" signals. The event
payload is never merged into the cache; the affected domain is marked stale
and re-read from the HTTP endpoints.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import websockets

from vigil.config import ClientConfig

logger = logging.getLogger("vigil.client")

# Push event type -> query domain.
EVENT_DOMAINS: dict[str, str] = {
    "metric": "metrics",
    "error": "errors",
    "alert": "alerts",
}

# Query domain -> read endpoint.
DOMAIN_ENDPOINTS: dict[str, str] = {
    "applications": "/api/applications",
    "metrics": "/api/metrics",
    "errors": "/api/errors",
    "alerts": "/api/alerts",
}


@dataclass(slots=True)
class CacheEntry:
    data: Any = None
    stale: bool = True
    fetched_at: datetime | None = None


@dataclass
class QueryCache:
    """Per-domain cached query results with explicit invalidation."""

    entries: dict[str, CacheEntry] = field(default_factory=dict)

    def get(self, domain: str) -> Any:
        entry = self.entries.get(domain)
        return entry.data if entry else None

    def is_stale(self, domain: str) -> bool:
        entry = self.entries.get(domain)
        return entry is None or entry.stale

    def invalidate(self, domain: str) -> None:
        self.entries.setdefault(domain, CacheEntry()).stale = True

    def store(self, domain: str, data: Any) -> None:
        self.entries[domain] = CacheEntry(
            data=data, stale=False, fetched_at=datetime.now(timezone.utc)
        )


def domain_for_event(raw: str | bytes) -> str | None:
    """Map a raw push frame to its query domain. Returns None for bad frames."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Error parsing push message: %s", exc)
        return None
    if not isinstance(message, dict):
        logger.warning("Ignoring non-object push message")
        return None
    kind = message.get("type")
    domain = EVENT_DOMAINS.get(kind) if isinstance(kind, str) else None
    if domain is None:
        logger.info("Unknown message type: %r", kind)
    return domain


def ws_url_for(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):].rstrip("/") + "/ws"
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):].rstrip("/") + "/ws"
    return base_url.rstrip("/") + "/ws"


class DashboardSession:
    """One live dashboard: a push connection, a query cache and poll timers.

    Args:
        config: Client settings (base URL, reconnect delay, poll interval).
        params: Optional query params per domain, e.g. ``{"metrics": {"applicationId": ...}}``.
        http: Injected HTTP client; one is created from ``config.base_url`` if omitted.
        connect: Push connection factory; defaults to ``websockets.connect``.
        on_refresh: Called with ``(domain, data)`` after each successful refetch.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        params: dict[str, dict[str, Any]] | None = None,
        http: httpx.AsyncClient | None = None,
        connect: Callable[[str], Any] | None = None,
        on_refresh: Callable[[str, Any], Awaitable[None] | None] | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.params = params or {}
        self.cache = QueryCache()
        self._http = http
        self._owns_http = http is None
        self._connect = connect or websockets.connect
        self._on_refresh = on_refresh
        self._tasks: list[asyncio.Task] = []
        self.connections = 0

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(base_url=self.config.base_url, timeout=10.0)
        return self._http

    async def refetch(self, domain: str) -> Any:
        """Pull a domain from its read endpoint and store it in the cache."""
        response = await self.http.get(DOMAIN_ENDPOINTS[domain], params=self.params.get(domain))
        response.raise_for_status()
        data = response.json()
        self.cache.store(domain, data)
        if self._on_refresh is not None:
            result = self._on_refresh(domain, data)
            if asyncio.iscoroutine(result):
                await result
        return data

    async def _safe_refetch(self, domain: str) -> None:
        try:
            await self.refetch(domain)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Refetch of %s failed: %s", domain, exc)

    async def handle_message(self, raw: str | bytes) -> str | None:
        """Invalidate and refetch the domain named by a push frame; payload is discarded."""
        domain = domain_for_event(raw)
        if domain is None:
            return None
        self.cache.invalidate(domain)
        await self._safe_refetch(domain)
        return domain

    async def listen(self) -> None:
        """Hold the push connection, reconnecting after a fixed delay forever."""
        url = ws_url_for(self.config.base_url)
        while True:
            try:
                async with self._connect(url) as ws:
                    self.connections += 1
                    logger.info("Push channel connected to %s", url)
                    async for raw in ws:
                        await self.handle_message(raw)
                logger.info("Push channel closed, reconnecting in %.0fs", self.config.reconnect_delay)
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
                logger.warning(
                    "Push channel error (%s), reconnecting in %.0fs",
                    exc,
                    self.config.reconnect_delay,
                )
            await asyncio.sleep(self.config.reconnect_delay)

    async def poll(self, domain: str) -> None:
        """Refetch ``domain`` every poll interval, independent of channel health."""
        while True:
            await self._safe_refetch(domain)
            await asyncio.sleep(self.config.poll_interval)

    async def start(self) -> None:
        """Start the push listener and one poll loop per domain."""
        self._tasks.append(asyncio.create_task(self.listen()))
        for domain in DOMAIN_ENDPOINTS:
            self._tasks.append(asyncio.create_task(self.poll(domain)))

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> DashboardSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
