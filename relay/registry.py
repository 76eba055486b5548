"""
Flight channel registry: per-flight subscriber sets and last-known sample.

Every channel is created lazily on first ingest or first subscribe and then
lives for the process lifetime, keeping its last sample for late joiners.
"""

import asyncio
import logging
import threading
from typing import Dict, Optional, Set

from contracts.constants import EVENT_TYPE_KEEPALIVE, SSE_KEEPALIVE_FRAME
from contracts.validation import TelemetrySample
from relay.errors import WriteFailure
from relay.metrics import CHANNELS, STREAM_EVENTS_SENT, STREAM_SUBSCRIBERS, WRITE_FAILURES

logger = logging.getLogger(__name__)


def format_sample_event(sample: TelemetrySample) -> str:
    """Frame a sample as one Server-Sent Event."""
    return f"data: {sample.to_json()}\n\n"


class Subscriber:
    """
    One open stream connection: a frame queue plus its keepalive task.

    Writes never block: broadcast and keepalive both enqueue with
    ``put_nowait`` and the connection's own task drains the queue. A write
    from a thread other than the one running the subscriber's loop is handed
    to that loop with ``call_soon_threadsafe``.
    """

    def __init__(self, flight_id: str, keepalive_interval: float):
        self.flight_id = flight_id
        self.keepalive_interval = keepalive_interval
        self._queue: asyncio.Queue = asyncio.Queue()
        self._keepalive_task: Optional[asyncio.Task] = None
        self._closed = False
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start_keepalive(self):
        """Schedule the keepalive task on the running loop."""
        if self._closed or self._keepalive_task is not None:
            return
        loop = asyncio.get_running_loop()
        self._keepalive_task = loop.create_task(self._keepalive_loop())

    async def _keepalive_loop(self):
        while not self._closed:
            await asyncio.sleep(self.keepalive_interval)
            try:
                self.write(SSE_KEEPALIVE_FRAME)
                STREAM_EVENTS_SENT.labels(type=EVENT_TYPE_KEEPALIVE).inc()
            except WriteFailure:
                return

    def write(self, frame: str):
        """Queue a frame for the connection. Raises WriteFailure once closed."""
        if self._closed:
            raise WriteFailure(f"subscriber for {self.flight_id} is closed")
        if self._loop is not None and not self._on_own_loop():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, frame)
        else:
            self._queue.put_nowait(frame)

    def _on_own_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def send_sample(self, sample: TelemetrySample):
        self.write(format_sample_event(sample))

    def pending(self) -> int:
        """Frames queued but not yet written."""
        return self._queue.qsize()

    async def next_frame(self) -> str:
        """Wait for the next queued frame."""
        return await self._queue.get()

    def close(self) -> bool:
        """
        Mark closed and cancel the keepalive task.

        Returns:
            True on the first call, False on any repeat.
        """
        if self._closed:
            return False
        self._closed = True
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
        return True


class Channel:
    """Live state for one flight: subscribers and the retained last sample."""

    def __init__(self, flight_id: str):
        self.flight_id = flight_id
        self.subscribers: Set[Subscriber] = set()
        self.last_sample: Optional[TelemetrySample] = None


class FlightChannelRegistry:
    """
    Owns the flight_id -> Channel map.

    All operations take one lock, guarding the map and the subscriber sets.
    Frames written to a subscriber from a worker thread are delivered through
    the subscriber's own event loop (see ``Subscriber.write``).
    """

    def __init__(self):
        self._channels: Dict[str, Channel] = {}
        self._lock = threading.RLock()

    def get_or_create_channel(self, flight_id: str) -> Channel:
        with self._lock:
            channel = self._channels.get(flight_id)
            if channel is None:
                channel = Channel(flight_id)
                self._channels[flight_id] = channel
                CHANNELS.set(len(self._channels))
                logger.info(f"Created channel for flight {flight_id!r}")
            return channel

    def update(self, flight_id: str, sample: TelemetrySample):
        """Replace the channel's last sample."""
        with self._lock:
            self.get_or_create_channel(flight_id).last_sample = sample

    def broadcast(self, flight_id: str, sample: TelemetrySample) -> int:
        """
        Write ``sample`` to every subscriber of the channel.

        A subscriber whose write fails is skipped, not removed; removal only
        happens through its own close path.

        Returns:
            Number of subscribers the sample was queued for.
        """
        delivered = 0
        with self._lock:
            channel = self.get_or_create_channel(flight_id)
            for subscriber in list(channel.subscribers):
                try:
                    subscriber.send_sample(sample)
                    delivered += 1
                except Exception as e:
                    WRITE_FAILURES.inc()
                    logger.debug(f"Skipped subscriber on {flight_id!r}: {e}")
        return delivered

    def publish(self, flight_id: str, sample: TelemetrySample) -> int:
        """
        Update then broadcast as one critical section.

        A concurrent subscribe therefore lands entirely before (replay of the
        previous sample, then this one live) or entirely after (this one as
        replay, not broadcast to it).
        """
        with self._lock:
            self.update(flight_id, sample)
            return self.broadcast(flight_id, sample)

    def subscribe(self, flight_id: str, subscriber: Subscriber) -> Optional[TelemetrySample]:
        """Register ``subscriber`` and return the sample to replay, if any."""
        with self._lock:
            channel = self.get_or_create_channel(flight_id)
            channel.subscribers.add(subscriber)
            STREAM_SUBSCRIBERS.inc()
            logger.info(
                f"Subscriber joined {flight_id!r}. "
                f"Channel subscribers: {len(channel.subscribers)}"
            )
            return channel.last_sample

    def unsubscribe(self, flight_id: str, subscriber: Subscriber) -> bool:
        """
        Remove ``subscriber``. Safe to call more than once.

        Returns:
            True if the subscriber was registered, False otherwise.
        """
        with self._lock:
            channel = self._channels.get(flight_id)
            if channel is None or subscriber not in channel.subscribers:
                return False
            channel.subscribers.discard(subscriber)
            STREAM_SUBSCRIBERS.dec()
            logger.info(
                f"Subscriber left {flight_id!r}. "
                f"Channel subscribers: {len(channel.subscribers)}"
            )
            return True

    def last_sample(self, flight_id: str) -> Optional[TelemetrySample]:
        with self._lock:
            channel = self._channels.get(flight_id)
            return channel.last_sample if channel else None

    def subscriber_count(self, flight_id: Optional[str] = None) -> int:
        """Subscribers on one channel, or across all channels."""
        with self._lock:
            if flight_id is not None:
                channel = self._channels.get(flight_id)
                return len(channel.subscribers) if channel else 0
            return sum(len(c.subscribers) for c in self._channels.values())

    def channel_count(self) -> int:
        with self._lock:
            return len(self._channels)
