"""
Subscriber stream handler: one Server-Sent Events connection per viewer.

Lifecycle per connection:
- Connecting: response opens with event-stream headers, buffering disabled
- Registered: subscribe, write the last known sample (if any) first
- Live: forward every broadcast sample, plus a keepalive comment on a timer
- Closed: client went away; cancel keepalive, unsubscribe, stop writing
"""

import logging
from typing import AsyncIterator

from fastapi.responses import StreamingResponse

from contracts.constants import EVENT_TYPE_REPLAY, EVENT_TYPE_SAMPLE, SSE_KEEPALIVE_FRAME, SSE_MEDIA_TYPE
from relay.metrics import STREAM_EVENTS_SENT
from relay.registry import FlightChannelRegistry, Subscriber, format_sample_event

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SubscriberStreamHandler:
    """Opens per-flight event streams against a shared registry."""

    def __init__(self, registry: FlightChannelRegistry, keepalive_interval: float):
        self.registry = registry
        self.keepalive_interval = keepalive_interval

    async def events(self, flight_id: str) -> AsyncIterator[str]:
        """
        Yield SSE frames for ``flight_id`` until the consumer stops iterating.

        Starlette cancels the iteration when the client disconnects; the
        ``finally`` block is the single close path.
        """
        subscriber = Subscriber(flight_id, self.keepalive_interval)
        last_sample = self.registry.subscribe(flight_id, subscriber)
        try:
            if last_sample is not None:
                STREAM_EVENTS_SENT.labels(type=EVENT_TYPE_REPLAY).inc()
                yield format_sample_event(last_sample)

            subscriber.start_keepalive()
            while True:
                frame = await subscriber.next_frame()
                if frame != SSE_KEEPALIVE_FRAME:
                    STREAM_EVENTS_SENT.labels(type=EVENT_TYPE_SAMPLE).inc()
                yield frame
        finally:
            self.close(flight_id, subscriber)

    def close(self, flight_id: str, subscriber: Subscriber):
        """Cancel keepalive and unsubscribe. Repeat calls are no-ops."""
        if subscriber.close():
            logger.info(f"Stream closed for {flight_id!r}")
        self.registry.unsubscribe(flight_id, subscriber)

    def open(self, flight_id: str) -> StreamingResponse:
        """Build the streaming HTTP response for one viewer."""
        return StreamingResponse(
            self.events(flight_id),
            media_type=SSE_MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )
