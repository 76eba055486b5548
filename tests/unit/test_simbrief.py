"""
Unit tests for the SimBrief planning proxy (no network).
"""

import pytest
from pathlib import Path
from unittest.mock import Mock
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import requests

from relay.config import SimBriefConfig
from relay.errors import BadRequest, NotFound, UpstreamError
from relay.simbrief import (
    SimBriefClient,
    SimBriefProxy,
    TTLCache,
    extract_meta,
    extract_route_points,
)

OFP = {
    "general": {
        "flight_number": "735",
        "route_distance": "812",
        "cruise_altitude": "34000",
        "route_points": [
            {"lat": "32.89", "lon": "-97.04", "ident": "KDFW"},
            {"lat": "bad", "lon": "-100.00", "ident": "BAD"},
            {"lat": "33.94", "lon": "-118.41", "name": "KLAX"},
        ],
    },
    "origin": {"iata_code": "DFW"},
    "destination": {"icao_code": "KLAX"},
    "atc": {"route": "ATC ROUTE"},
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestExtraction:
    """Test OFP parsing."""

    def test_meta_falls_back_to_alternate_fields(self):
        """Test that each meta field takes the first populated alternative."""
        meta = extract_meta(OFP)

        assert meta.callsign == "735"
        assert meta.origin == "DFW"
        assert meta.destination == "KLAX"
        assert meta.route_text == "ATC ROUTE"
        assert meta.distance_nm == "812"
        assert meta.cruise_alt_ft == "34000"
        assert meta.reg is None

    def test_route_points_drop_non_finite(self):
        """Test that fixes without usable coordinates are filtered out."""
        points = extract_route_points(OFP)

        assert [p.ident for p in points] == ["KDFW", "KLAX"]
        assert points[0].lat == 32.89

    def test_route_points_fall_back_to_navlog(self):
        """Test that navlog.fix is used when route_points is absent."""
        ofp = {"navlog": {"fix": [{"lat": 1, "lon": 2, "ident": "FIX"}]}}
        assert [p.ident for p in extract_route_points(ofp)] == ["FIX"]

    def test_route_points_empty_ofp(self):
        assert extract_route_points({}) == []


class TestTTLCache:
    """Test the single-entry cache."""

    def test_hit_while_fresh_and_key_matches(self):
        clock = FakeClock()
        cache = TTLCache(60, clock)
        cache.put("u:a", {"x": 1})

        clock.now = 59
        assert cache.get("u:a") == {"x": 1}

    def test_miss_after_ttl(self):
        clock = FakeClock()
        cache = TTLCache(60, clock)
        cache.put("u:a", {"x": 1})

        clock.now = 60
        assert cache.get("u:a") is None

    def test_miss_on_other_key(self):
        cache = TTLCache(60, FakeClock())
        cache.put("u:a", {"x": 1})
        assert cache.get("u:b") is None


class TestSimBriefProxy:
    """Test proxy request handling with a mocked upstream client."""

    def make_proxy(self, default_user=None):
        client = Mock()
        client.fetch_ofp.return_value = OFP
        clock = FakeClock()
        proxy = SimBriefProxy(SimBriefConfig(default_user=default_user, cache_seconds=60), client=client, clock=clock)
        return proxy, client, clock

    def test_meta_requires_user(self):
        """Test that no username, userid or default user is a bad request."""
        proxy, _, _ = self.make_proxy()
        with pytest.raises(BadRequest):
            proxy.latest_meta()

    def test_meta_uses_default_user(self):
        proxy, client, _ = self.make_proxy(default_user="wheels")
        payload = proxy.latest_meta()

        assert payload["ok"] is True
        client.fetch_ofp.assert_called_once_with(username="wheels", userid=None)

    def test_meta_is_cached(self):
        """Test that a repeat request within the TTL skips the upstream."""
        proxy, client, clock = self.make_proxy()
        proxy.latest_meta(username="wheels")
        clock.now = 30
        proxy.latest_meta(username="wheels")
        assert client.fetch_ofp.call_count == 1

        clock.now = 61
        proxy.latest_meta(username="wheels")
        assert client.fetch_ofp.call_count == 2

    def test_route_by_userid(self):
        proxy, client, _ = self.make_proxy()
        payload = proxy.planned_route(userid="12345")

        client.fetch_ofp.assert_called_once_with(username=None, userid="12345", ofp_id=None)
        assert payload["line"]["properties"]["userid"] == "12345"
        assert len(payload["points"]["features"]) == 2

    def test_route_cache_key_includes_ofp_id(self):
        """Test that different OFPs for one user are fetched separately."""
        proxy, client, _ = self.make_proxy()
        proxy.planned_route(user="wheels", ofp_id="1")
        proxy.planned_route(user="wheels", ofp_id="2")
        assert client.fetch_ofp.call_count == 2

    def test_route_requires_user(self):
        proxy, _, _ = self.make_proxy()
        with pytest.raises(BadRequest):
            proxy.planned_route()

    def test_route_without_points_is_not_found(self):
        proxy, client, _ = self.make_proxy()
        client.fetch_ofp.return_value = {"general": {}}
        with pytest.raises(NotFound):
            proxy.planned_route(user="wheels")


class TestSimBriefClient:
    """Test upstream error mapping."""

    def make_client(self, response=None, error=None):
        session = Mock()
        if error is not None:
            session.get.side_effect = error
        else:
            session.get.return_value = response
        return SimBriefClient("https://example.invalid/fetcher", timeout=5, session=session), session

    def test_success_passes_params(self):
        response = Mock(status_code=200)
        response.json.return_value = OFP
        client, session = self.make_client(response)

        assert client.fetch_ofp(username="wheels", ofp_id="9") == OFP
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"json": "1", "username": "wheels", "ofp_id": "9"}
        assert kwargs["timeout"] == 5

    def test_http_error_raises_upstream_error(self):
        client, _ = self.make_client(Mock(status_code=503))
        with pytest.raises(UpstreamError) as exc_info:
            client.fetch_ofp(username="wheels")
        assert "503" in str(exc_info.value)

    def test_transport_error_raises_upstream_error(self):
        client, _ = self.make_client(error=requests.exceptions.ConnectionError("down"))
        with pytest.raises(UpstreamError):
            client.fetch_ofp(username="wheels")

    def test_invalid_json_raises_upstream_error(self):
        response = Mock(status_code=200)
        response.json.side_effect = ValueError("not json")
        client, _ = self.make_client(response)
        with pytest.raises(UpstreamError):
            client.fetch_ofp(username="wheels")
