"""
Shared constants for the Wheels telemetry relay.

This module provides a single source of truth for:
- Flight channel defaults
- Ingest header and field names
- Stream event framing
- Planning API defaults

All services should import from this module to ensure consistency.
"""

# Schema version
SCHEMA_VERSION = 1

# Flight channels
DEFAULT_FLIGHT_ID = "default"

# Ingest
INGEST_TOKEN_HEADER = "X-Ingest-Token"
REQUIRED_COORDINATE_FIELDS = ("lat", "lon")
OPTIONAL_NUMERIC_FIELDS = ("alt_ft", "hdg_deg", "gs_kts", "vs_fpm", "tas_kts")
SERVER_TS_FIELD = "serverTs"

# Stream (Server-Sent Events)
SSE_MEDIA_TYPE = "text/event-stream"
SSE_KEEPALIVE_FRAME = ": keepalive\n\n"
DEFAULT_KEEPALIVE_INTERVAL_SECONDS = 25.0

# Stream event types (metric labels)
EVENT_TYPE_SAMPLE = "sample"
EVENT_TYPE_REPLAY = "replay"
EVENT_TYPE_KEEPALIVE = "keepalive"

# Planning API (SimBrief)
SIMBRIEF_FETCHER_URL = "https://www.simbrief.com/api/xml.fetcher.php"
SIMBRIEF_SOURCE_NAME = "SimBrief"
DEFAULT_PROXY_CACHE_SECONDS = 60

# Static site
STATIC_MAX_AGE_SECONDS = 3600
