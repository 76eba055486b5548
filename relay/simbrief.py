"""
SimBrief planning proxy - latest OFP summary and planned route as GeoJSON.

Upstream responses are cached for a short TTL, one entry per endpoint keyed by
the requested user, so a page full of viewers polling the route hits the
upstream at most once a minute.
"""

import logging
import math
import threading
import time
from typing import Any, Callable, Optional

import requests

from contracts.constants import SIMBRIEF_SOURCE_NAME
from contracts.validation import FlightMeta, RoutePoint
from relay.config import SimBriefConfig
from relay.errors import BadRequest, NotFound, UpstreamError
from relay.metrics import SIMBRIEF_FETCHES

logger = logging.getLogger(__name__)


def _dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None on any missing step."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(*values: Any) -> Any:
    """First truthy value, else None."""
    for value in values:
        if value:
            return value
    return None


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class TTLCache:
    """Single-entry cache: serves the stored payload while key matches and it is fresh."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._key: Optional[str] = None
        self._ts = 0.0
        self._data: Optional[dict] = None
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            if self._data is not None and self._key == key and self._clock() - self._ts < self.ttl_seconds:
                return self._data
            return None

    def put(self, key: str, data: dict):
        with self._lock:
            self._key = key
            self._ts = self._clock()
            self._data = data


class SimBriefClient:
    """Client for the SimBrief OFP fetcher."""

    def __init__(self, base_url: str, timeout: float = 15.0, session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_ofp(self, username: Optional[str] = None, userid: Optional[str] = None,
                  ofp_id: Optional[str] = None) -> dict:
        """
        Fetch the latest (or a specific) OFP as JSON.

        Raises:
            UpstreamError: on transport failure, non-200 status or undecodable body.
        """
        params = {"json": "1"}
        if username:
            params["username"] = username
        elif userid:
            params["userid"] = userid
        if ofp_id:
            params["ofp_id"] = ofp_id

        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            SIMBRIEF_FETCHES.labels(status="error").inc()
            logger.error(f"SimBrief request failed: {e}")
            raise UpstreamError(f"SimBrief fetch failed: {e}") from e

        if response.status_code != 200:
            SIMBRIEF_FETCHES.labels(status="error").inc()
            logger.error(f"SimBrief error: HTTP {response.status_code}")
            raise UpstreamError(f"SimBrief fetch failed: HTTP {response.status_code}")

        try:
            ofp = response.json()
        except ValueError as e:
            SIMBRIEF_FETCHES.labels(status="error").inc()
            raise UpstreamError(f"SimBrief returned invalid JSON: {e}") from e

        SIMBRIEF_FETCHES.labels(status="success").inc()
        return ofp if isinstance(ofp, dict) else {}


# ============================================
# OFP Transformation
# ============================================

def extract_meta(ofp: dict) -> FlightMeta:
    """Summarize an OFP, taking the first populated alternative per field."""
    return FlightMeta(
        callsign=_text(_first(_dig(ofp, "general", "icao_id"), _dig(ofp, "general", "flight_number"))),
        flight_number=_text(_first(_dig(ofp, "general", "flight_number"))),
        origin=_text(_first(_dig(ofp, "origin", "icao_code"), _dig(ofp, "origin", "iata_code"))),
        destination=_text(_first(_dig(ofp, "destination", "icao_code"), _dig(ofp, "destination", "iata_code"))),
        aircraft_icao=_text(_first(_dig(ofp, "aircraft", "icaocode"), _dig(ofp, "aircraft", "icao_type"))),
        reg=_text(_first(_dig(ofp, "aircraft", "reg"))),
        etd=_first(_dig(ofp, "times", "sched_out"), _dig(ofp, "times", "est_out")),
        eta=_first(_dig(ofp, "times", "sched_in"), _dig(ofp, "times", "est_in")),
        cruise_alt_ft=_first(_dig(ofp, "general", "initial_altitude"), _dig(ofp, "general", "cruise_altitude")),
        route_text=_text(_first(_dig(ofp, "general", "route"), _dig(ofp, "atc", "route"))),
        distance_nm=_first(
            _dig(ofp, "general", "plan_routetotaldistance"),
            _dig(ofp, "general", "route_distance"),
        ),
    )


def extract_route_points(ofp: dict) -> list[RoutePoint]:
    """Route fixes from general.route_points, else navlog.fix; non-finite dropped."""
    raw_points = _dig(ofp, "general", "route_points")
    if not isinstance(raw_points, list):
        raw_points = _dig(ofp, "navlog", "fix")
    if not isinstance(raw_points, list):
        return []

    points = []
    for raw in raw_points:
        if not isinstance(raw, dict):
            continue
        lat = _to_float(raw.get("lat"))
        lon = _to_float(raw.get("lon"))
        if not (math.isfinite(lat) and math.isfinite(lon)):
            continue
        points.append(RoutePoint(lat=lat, lon=lon, ident=str(raw.get("ident") or raw.get("name") or "")))
    return points


def build_route_payload(ofp: dict, user: Optional[str], userid: Optional[str]) -> dict:
    """
    Build the route line and fix points as GeoJSON.

    Raises:
        NotFound: the OFP has no usable route points.
    """
    points = extract_route_points(ofp)
    if not points:
        raise NotFound("No route points found in OFP")

    line = {
        "type": "Feature",
        "properties": {
            "source": SIMBRIEF_SOURCE_NAME,
            "user": user or None,
            "userid": userid or None,
            "callsign": _first(_dig(ofp, "general", "icao_id"), _dig(ofp, "general", "flight_number")) or "",
            "dep": _first(_dig(ofp, "origin", "icao_code"), _dig(ofp, "origin", "iata_code")) or "",
            "arr": _first(_dig(ofp, "destination", "icao_code"), _dig(ofp, "destination", "iata_code")) or "",
            "route": _first(_dig(ofp, "general", "route"), _dig(ofp, "atc", "route")) or "",
            "distance_nm": _first(
                _dig(ofp, "general", "plan_routetotaldistance"),
                _dig(ofp, "general", "route_distance"),
            ),
            "alt_cruise_ft": _first(
                _dig(ofp, "general", "initial_altitude"),
                _dig(ofp, "general", "cruise_altitude"),
            ),
        },
        "geometry": {"type": "LineString", "coordinates": [[p.lon, p.lat] for p in points]},
    }

    points_fc = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"ident": p.ident},
                "geometry": {"type": "Point", "coordinates": [p.lon, p.lat]},
            }
            for p in points
        ],
    }

    return {"line": line, "points": points_fc}


class SimBriefProxy:
    """Cached latest-plan and planned-route lookups."""

    def __init__(self, config: SimBriefConfig, client: Optional[SimBriefClient] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.default_user = config.default_user
        self.client = client or SimBriefClient(config.base_url, timeout=config.timeout_seconds)
        self.meta_cache = TTLCache(config.cache_seconds, clock)
        self.route_cache = TTLCache(config.cache_seconds, clock)

    def latest_meta(self, username: str = "", userid: str = "") -> dict:
        """Return ``{"ok": True, "meta": {...}}`` for a user, from cache when fresh."""
        username = (username or "").strip()
        userid = (userid or "").strip()
        if not username and not userid:
            if not self.default_user:
                raise BadRequest("Provide username= or userid= (or set SIMBRIEF_USER)")
            username = self.default_user

        key = f"u:{username}" if username else f"id:{userid}"
        cached = self.meta_cache.get(key)
        if cached is not None:
            SIMBRIEF_FETCHES.labels(status="cached").inc()
            return cached

        ofp = self.client.fetch_ofp(username=username or None, userid=None if username else userid)
        payload = {"ok": True, "meta": extract_meta(ofp).model_dump()}
        self.meta_cache.put(key, payload)
        return payload

    def planned_route(self, user: str = "", userid: str = "", ofp_id: str = "") -> dict:
        """Return the route GeoJSON payload, from cache when fresh."""
        userid = (userid or "").strip()
        user = (user or self.default_user or "").strip()
        ofp_id = (ofp_id or "").strip()
        if not user and not userid:
            raise BadRequest("Missing SimBrief user (?user= or ?userid= or SIMBRIEF_USER)")

        key = f"id:{userid}" if userid else f"u:{user}"
        if ofp_id:
            key = f"{key}|ofp:{ofp_id}"
        cached = self.route_cache.get(key)
        if cached is not None:
            SIMBRIEF_FETCHES.labels(status="cached").inc()
            return cached

        ofp = self.client.fetch_ofp(
            username=None if userid else user,
            userid=userid or None,
            ofp_id=ofp_id or None,
        )
        payload = build_route_payload(ofp, user, userid)
        self.route_cache.put(key, payload)
        return payload
