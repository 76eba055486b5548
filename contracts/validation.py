"""
Validation library for Wheels Relay message contracts.

Provides Pydantic models for the telemetry sample pushed to viewers and for
the route/meta payloads served by the planning proxy. Services should build
and validate messages through these models before sending them.
"""

import math
from typing import Any, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field

from contracts.constants import (
    DEFAULT_FLIGHT_ID,
    OPTIONAL_NUMERIC_FIELDS,
    REQUIRED_COORDINATE_FIELDS,
    SERVER_TS_FIELD,
)


# ============================================================================
# Numeric helpers
# ============================================================================

def is_finite_number(value: Any) -> bool:
    """True for int/float values that are finite. Booleans are not numbers here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # ints beyond float range
        return False


def coerce_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce an optional telemetry field to a float.

    Numbers and numeric strings are accepted; anything else (missing, null,
    booleans, junk strings, NaN/Infinity) falls back to ``default``.
    """
    if is_finite_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return default
        if math.isfinite(parsed):
            return parsed
    return default


# ============================================================================
# Telemetry
# ============================================================================

class TelemetrySample(BaseModel):
    """One instantaneous aircraft state. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    flight: str = Field(min_length=1, description="Flight identifier (channel key)")
    lat: float = Field(allow_inf_nan=False, description="Latitude in decimal degrees")
    lon: float = Field(allow_inf_nan=False, description="Longitude in decimal degrees")
    alt_ft: float = 0.0
    hdg_deg: float = 0.0
    gs_kts: float = 0.0
    vs_fpm: float = 0.0
    tas_kts: float = 0.0
    serverTs: int = Field(description="Receipt timestamp, epoch milliseconds")

    def to_json(self) -> str:
        """Serialize for a stream event."""
        return self.model_dump_json()


def build_sample(flight: str, data: Any, now_ms: int) -> tuple[bool, Optional[TelemetrySample], Optional[str]]:
    """
    Build a TelemetrySample from a raw ingest body.

    ``lat``/``lon`` must be finite JSON numbers. Optional fields are coerced
    with ``coerce_number``. ``serverTs`` keeps a client-supplied value and is
    stamped with ``now_ms`` when absent, zero or non-numeric.

    Returns:
        (is_valid, sample_or_none, error_message_or_none)
    """
    if not isinstance(data, dict):
        return False, None, "body must be a JSON object"

    for field in REQUIRED_COORDINATE_FIELDS:
        if not is_finite_number(data.get(field)):
            return False, None, "lat/lon required (numbers)"

    fields = {name: coerce_number(data.get(name)) for name in OPTIONAL_NUMERIC_FIELDS}
    supplied_ts = coerce_number(data.get(SERVER_TS_FIELD))

    try:
        sample = TelemetrySample(
            flight=flight or DEFAULT_FLIGHT_ID,
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            serverTs=int(supplied_ts) if supplied_ts else now_ms,
            **fields,
        )
        return True, sample, None
    except Exception as e:
        return False, None, str(e)


def validate_telemetry_sample(data: dict) -> tuple[bool, Optional[TelemetrySample], Optional[str]]:
    """
    Validate an already-formed TelemetrySample (e.g. a decoded stream event).

    Returns:
        (is_valid, sample_or_none, error_message_or_none)
    """
    try:
        sample = TelemetrySample(**data)
        return True, sample, None
    except Exception as e:
        return False, None, str(e)


# ============================================================================
# HTTP acknowledgements
# ============================================================================

class IngestAck(BaseModel):
    """Body returned to the sender on a successful ingest."""
    ok: Literal[True] = True


class HealthStatus(BaseModel):
    """Health endpoint payload."""
    ok: bool = True
    uptime: float = Field(ge=0, description="Seconds since process start")
    channels: int = Field(default=0, ge=0)
    subscribers: int = Field(default=0, ge=0)


# ============================================================================
# Planning proxy (SimBrief)
# ============================================================================

class FlightMeta(BaseModel):
    """Flight plan summary extracted from an OFP."""
    callsign: Optional[str] = None
    flight_number: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    aircraft_icao: Optional[str] = None
    reg: Optional[str] = None
    etd: Optional[Any] = None
    eta: Optional[Any] = None
    cruise_alt_ft: Optional[Any] = None
    route_text: Optional[str] = None
    distance_nm: Optional[Any] = None


class MetaResponse(BaseModel):
    """Payload of the latest-plan endpoint."""
    ok: Literal[True] = True
    meta: FlightMeta


class RoutePoint(BaseModel):
    """One route fix with finite coordinates."""
    lat: float = Field(allow_inf_nan=False)
    lon: float = Field(allow_inf_nan=False)
    ident: str = ""


class LineGeometry(BaseModel):
    type: Literal["LineString"] = "LineString"
    coordinates: list[tuple[float, float]] = Field(min_length=1)


class PointGeometry(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]


class RouteLineProperties(BaseModel):
    source: str
    user: Optional[str] = None
    userid: Optional[str] = None
    callsign: str = ""
    dep: str = ""
    arr: str = ""
    route: str = ""
    distance_nm: Optional[Any] = None
    alt_cruise_ft: Optional[Any] = None


class RouteLineFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    properties: RouteLineProperties
    geometry: LineGeometry


class RoutePointFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    properties: dict = Field(default_factory=dict)
    geometry: PointGeometry


class RoutePointCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[RoutePointFeature]


class RoutePayload(BaseModel):
    """Payload of the planned-route endpoint: route line plus fix points."""
    line: RouteLineFeature
    points: RoutePointCollection


def validate_meta_response(data: dict) -> tuple[bool, Optional[MetaResponse], Optional[str]]:
    """
    Validate MetaResponse.

    Returns:
        (is_valid, response_or_none, error_message_or_none)
    """
    try:
        response = MetaResponse(**data)
        return True, response, None
    except Exception as e:
        return False, None, str(e)


def validate_route_payload(data: dict) -> tuple[bool, Optional[RoutePayload], Optional[str]]:
    """
    Validate RoutePayload.

    Returns:
        (is_valid, payload_or_none, error_message_or_none)
    """
    try:
        payload = RoutePayload(**data)
        return True, payload, None
    except Exception as e:
        return False, None, str(e)
