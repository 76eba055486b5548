"""
Prometheus metrics for the relay service.
"""

import os
from fastapi.responses import Response
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import CollectorRegistry


CHANNELS = Gauge(
    'relay_channels',
    'Flight channels created since start'
)

STREAM_SUBSCRIBERS = Gauge(
    'relay_stream_subscribers',
    'Open stream subscribers across all channels'
)

STREAM_EVENTS_SENT = Counter(
    'relay_stream_events_sent_total',
    'Stream frames written by type',
    ['type']  # sample, replay, keepalive
)

WRITE_FAILURES = Counter(
    'relay_write_failures_total',
    'Broadcast writes skipped because the subscriber was gone'
)

SAMPLES_INGESTED = Counter(
    'relay_samples_ingested_total',
    'Telemetry samples accepted'
)

INGEST_REJECTED = Counter(
    'relay_ingest_rejected_total',
    'Telemetry samples rejected',
    ['reason']  # unauthorized, bad_request
)

HTTP_REQUESTS = Counter(
    'relay_http_requests_total',
    'HTTP requests',
    ['method', 'path', 'status']
)

SIMBRIEF_FETCHES = Counter(
    'relay_simbrief_fetches_total',
    'Planning API fetches',
    ['status']  # success, cached, error
)


async def get_metrics():
    """FastAPI handler for /metrics endpoint."""
    if 'PROMETHEUS_MULTIPROC_DIR' in os.environ:
        # Multi-process mode (for production)
        registry = CollectorRegistry()
        MultiProcessCollector(registry)
        output = generate_latest(registry)
    else:
        # Single-process mode (for development)
        output = generate_latest()

    return Response(content=output, media_type=CONTENT_TYPE_LATEST)
