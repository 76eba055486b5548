"""
Telemetry ingest: authenticate the sender, validate the sample, fan it out.
"""

import hmac
import logging
import time
from typing import Any, Callable, Optional

from contracts.constants import DEFAULT_FLIGHT_ID
from contracts.validation import TelemetrySample, build_sample
from relay.errors import BadRequest, Unauthorized
from relay.metrics import INGEST_REJECTED, SAMPLES_INGESTED
from relay.registry import FlightChannelRegistry

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def resolve_flight_id(*candidates: Any) -> str:
    """First non-empty candidate as a string, else the default channel."""
    for candidate in candidates:
        if candidate is None:
            continue
        flight_id = str(candidate)
        if flight_id:
            return flight_id
    return DEFAULT_FLIGHT_ID


class TelemetryIngestHandler:
    """Accepts samples from the single authenticated sender."""

    def __init__(
        self,
        registry: FlightChannelRegistry,
        token: str,
        clock: Callable[[], int] = now_ms,
    ):
        self.registry = registry
        self._token = token
        self._clock = clock

    def _check_token(self, supplied_token: Optional[str]) -> bool:
        if supplied_token is None:
            return False
        return hmac.compare_digest(supplied_token.encode("utf-8"), self._token.encode("utf-8"))

    def ingest(self, flight_id: str, raw_payload: Any, supplied_token: Optional[str]) -> TelemetrySample:
        """
        Validate and publish one sample.

        Raises:
            Unauthorized: token does not match; nothing is changed.
            BadRequest: lat/lon missing or not finite numbers; nothing is changed.

        Returns:
            The stored sample. Subscriber health never affects the outcome.
        """
        if not self._check_token(supplied_token):
            INGEST_REJECTED.labels(reason="unauthorized").inc()
            logger.warning(f"Rejected ingest for {flight_id!r}: bad token")
            raise Unauthorized()

        is_valid, sample, error = build_sample(flight_id, raw_payload, self._clock())
        if not is_valid:
            INGEST_REJECTED.labels(reason="bad_request").inc()
            logger.warning(f"Rejected ingest for {flight_id!r}: {error}")
            raise BadRequest(error)

        delivered = self.registry.publish(sample.flight, sample)
        SAMPLES_INGESTED.inc()
        logger.debug(f"Ingested sample for {sample.flight!r}, delivered to {delivered} subscribers")
        return sample
