"""
Wheels Relay Contracts Package

Provides shared constants and validation for message contracts.
"""

from contracts.constants import *
from contracts.validation import (
    TelemetrySample,
    IngestAck,
    HealthStatus,
    FlightMeta,
    MetaResponse,
    RoutePoint,
    build_sample,
    validate_telemetry_sample,
    validate_meta_response,
    validate_route_payload,
)

__all__ = [
    # Constants
    "SCHEMA_VERSION",
    "DEFAULT_FLIGHT_ID",
    "INGEST_TOKEN_HEADER",
    "OPTIONAL_NUMERIC_FIELDS",
    "SERVER_TS_FIELD",
    "SSE_MEDIA_TYPE",
    "SSE_KEEPALIVE_FRAME",
    "DEFAULT_KEEPALIVE_INTERVAL_SECONDS",
    "EVENT_TYPE_SAMPLE",
    "EVENT_TYPE_REPLAY",
    "EVENT_TYPE_KEEPALIVE",
    "STATIC_MAX_AGE_SECONDS",
    # Models
    "TelemetrySample",
    "IngestAck",
    "HealthStatus",
    "FlightMeta",
    "MetaResponse",
    "RoutePoint",
    # Builders / validators
    "build_sample",
    "validate_telemetry_sample",
    "validate_meta_response",
    "validate_route_payload",
]
