"""
Contract tests for the telemetry sample.

Validates that ingest bodies become samples with the documented shape and
that malformed bodies are rejected. These tests run independently (no server).
"""

import json
import math
import pytest
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from pydantic import ValidationError

from contracts.validation import (
    build_sample,
    coerce_number,
    is_finite_number,
    validate_telemetry_sample,
)

NOW_MS = 1_700_000_000_000


class TestBuildSample:
    """Test ingest body -> TelemetrySample."""

    def test_full_body_builds_sample(self):
        """Test that every documented field is carried through."""
        body = {
            "lat": 33.1, "lon": -97.2, "alt_ft": 10000, "hdg_deg": 270,
            "gs_kts": 250, "vs_fpm": -500, "tas_kts": 280, "serverTs": 1234,
        }
        is_valid, sample, error = build_sample("W735", body, NOW_MS)

        assert is_valid, f"Body should validate: {error}"
        assert sample.flight == "W735"
        assert sample.lat == 33.1
        assert sample.lon == -97.2
        assert sample.alt_ft == 10000.0
        assert sample.hdg_deg == 270.0
        assert sample.gs_kts == 250.0
        assert sample.vs_fpm == -500.0
        assert sample.tas_kts == 280.0
        assert sample.serverTs == 1234

    def test_optional_fields_default_to_zero(self):
        """Test that absent optional fields become 0."""
        is_valid, sample, _ = build_sample("W735", {"lat": 1, "lon": 2}, NOW_MS)

        assert is_valid
        assert (sample.alt_ft, sample.hdg_deg, sample.gs_kts, sample.vs_fpm, sample.tas_kts) == (0, 0, 0, 0, 0)

    def test_non_numeric_optional_fields_default_to_zero(self):
        """Test that junk in optional fields is coerced rather than rejected."""
        body = {"lat": 1, "lon": 2, "alt_ft": "high", "hdg_deg": None, "gs_kts": True, "vs_fpm": [1]}
        is_valid, sample, _ = build_sample("W735", body, NOW_MS)

        assert is_valid
        assert sample.alt_ft == 0
        assert sample.hdg_deg == 0
        assert sample.gs_kts == 0
        assert sample.vs_fpm == 0

    def test_server_ts_assigned_when_absent(self):
        """Test that the receipt time is stamped when the client omits it."""
        _, sample, _ = build_sample("W735", {"lat": 1, "lon": 2}, NOW_MS)
        assert sample.serverTs == NOW_MS

    def test_server_ts_preserved_when_supplied(self):
        """Test that a client-supplied serverTs wins over the receipt time."""
        _, sample, _ = build_sample("W735", {"lat": 1, "lon": 2, "serverTs": 42}, NOW_MS)
        assert sample.serverTs == 42

    @pytest.mark.parametrize("body", [
        {"lon": 2},
        {"lat": 1},
        {"lat": "not a number", "lon": 2},
        {"lat": "33.1", "lon": -97.2},
        {"lat": None, "lon": 2},
        {"lat": True, "lon": 2},
        {"lat": float("nan"), "lon": 2},
        {"lat": 1, "lon": float("inf")},
    ])
    def test_bad_coordinates_rejected(self, body):
        """Test that lat/lon must be finite JSON numbers."""
        is_valid, sample, error = build_sample("W735", body, NOW_MS)

        assert not is_valid
        assert sample is None
        assert "lat/lon" in error

    def test_out_of_range_integer_coordinates_rejected(self):
        """Test that integers too large for a float are not finite coordinates."""
        is_valid, sample, error = build_sample("W735", {"lat": 10 ** 400, "lon": 2}, NOW_MS)

        assert not is_valid
        assert sample is None
        assert "lat/lon" in error

    def test_out_of_range_integer_optional_field_defaults(self):
        """Test that an oversized optional field falls back to 0 instead of failing."""
        body = {"lat": 1, "lon": 2, "alt_ft": 10 ** 400}
        is_valid, sample, error = build_sample("W735", body, NOW_MS)

        assert is_valid, error
        assert sample.alt_ft == 0

    @pytest.mark.parametrize("body", [None, [], "lat=1", 5])
    def test_non_object_body_rejected(self, body):
        """Test that the body must be a JSON object."""
        is_valid, _, error = build_sample("W735", body, NOW_MS)
        assert not is_valid
        assert "object" in error

    def test_empty_flight_uses_default_channel(self):
        """Test that an empty flight identifier falls back to the default channel."""
        _, sample, _ = build_sample("", {"lat": 1, "lon": 2}, NOW_MS)
        assert sample.flight == "default"

    def test_sample_is_immutable(self):
        """Test that a built sample cannot be modified."""
        _, sample, _ = build_sample("W735", {"lat": 1, "lon": 2}, NOW_MS)
        with pytest.raises(ValidationError):
            sample.lat = 5.0


class TestSampleWireFormat:
    """Test the JSON carried in stream events."""

    def test_json_round_trips_through_validator(self):
        """Test that the event JSON validates back into an equal sample."""
        _, sample, _ = build_sample("W735", {"lat": 33.1, "lon": -97.2, "alt_ft": 10000}, NOW_MS)
        decoded = json.loads(sample.to_json())

        is_valid, parsed, error = validate_telemetry_sample(decoded)
        assert is_valid, error
        assert parsed == sample

    def test_json_keys_match_wire_names(self):
        """Test that the event carries the field names viewers read."""
        _, sample, _ = build_sample("W735", {"lat": 1, "lon": 2}, NOW_MS)
        decoded = json.loads(sample.to_json())

        assert list(decoded) == [
            "flight", "lat", "lon", "alt_ft", "hdg_deg", "gs_kts", "vs_fpm", "tas_kts", "serverTs",
        ]

    def test_validator_rejects_missing_server_ts(self):
        """Test that a stream event without serverTs is not a valid sample."""
        is_valid, _, error = validate_telemetry_sample({"flight": "A", "lat": 1, "lon": 2})
        assert not is_valid


class TestCoerceNumber:
    """Test optional field coercion."""

    def test_numeric_string_accepted(self):
        assert coerce_number(" 12.5 ") == 12.5

    def test_nan_string_falls_back(self):
        assert coerce_number("nan") == 0.0

    def test_oversized_integer_falls_back(self):
        assert coerce_number(10 ** 400) == 0.0
        assert not is_finite_number(10 ** 400)

    def test_custom_default(self):
        assert math.isnan(coerce_number(None, default=math.nan))
