"""Fan-out of change events to live push channels."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from vigil.models.enums import EventKind
from vigil.models.wire import Record, encode_event

logger = logging.getLogger("vigil.broadcaster")


class Channel(Protocol):
    """Anything that can receive a text frame (FastAPI's WebSocket qualifies)."""

    async def send_text(self, data: str) -> None: ...


class Broadcaster:
    """Registry of connected channels with best-effort publish.

    Mutation of the registry happens under a lock. Publishing iterates over a
    copy, so channels may connect or disconnect while a broadcast is in flight.
    A channel whose send fails or times out is dropped and closed; the others
    still receive the event and the caller never sees the failure.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self._channels: set[Channel] = set()
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    async def connect(self, channel: Channel) -> None:
        async with self._lock:
            self._channels.add(channel)
        logger.info("Channel connected (%d live)", len(self._channels))

    async def disconnect(self, channel: Channel) -> None:
        """Remove a channel. Removing an unknown or already removed channel is a no-op."""
        async with self._lock:
            if channel not in self._channels:
                return
            self._channels.discard(channel)
        logger.info("Channel disconnected (%d live)", len(self._channels))

    async def publish(self, kind: EventKind | str, record: Record) -> int:
        """Send one event to every live channel. Returns the number delivered."""
        kind = EventKind(kind).value
        async with self._lock:
            targets = list(self._channels)
        if not targets:
            return 0

        message = encode_event(kind, record)
        results = await asyncio.gather(
            *(self._send(channel, message) for channel in targets),
            return_exceptions=True,
        )

        delivered = 0
        for channel, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping channel after failed %s send: %r", kind, result)
                await self.disconnect(channel)
                await self._close(channel)
            else:
                delivered += 1
        logger.debug("Published %s event to %d/%d channels", kind, delivered, len(targets))
        return delivered

    async def _send(self, channel: Channel, message: str) -> None:
        await asyncio.wait_for(channel.send_text(message), timeout=self._send_timeout)

    async def _close(self, channel: Channel) -> None:
        """Close a dropped channel so its client notices and reconnects."""
        close = getattr(channel, "close", None)
        if close is None:
            return
        try:
            await asyncio.wait_for(close(), timeout=self._send_timeout)
        except Exception as exc:
            logger.debug("Closing dropped channel failed: %r", exc)
