"""
FastAPI relay - live telemetry hub for the Wheels tracker.

Serves:
- POST /ingest for the simulator-side sender (token protected)
- GET /stream Server-Sent Events feed per flight
- SimBrief planning proxy (latest OFP summary, planned route GeoJSON)
- Health check and Prometheus metrics endpoints
- Optional static site from PUBLIC_DIR
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from contracts.constants import DEFAULT_FLIGHT_ID, INGEST_TOKEN_HEADER
from contracts.validation import HealthStatus, IngestAck
from relay import __version__
from relay.config import RelayConfig
from relay.errors import RelayError
from relay.ingest import TelemetryIngestHandler, resolve_flight_id
from relay.metrics import HTTP_REQUESTS, get_metrics
from relay.public import PublicFiles
from relay.registry import FlightChannelRegistry
from relay.simbrief import SimBriefProxy
from relay.stream import SubscriberStreamHandler

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config: Optional[RelayConfig] = None, simbrief: Optional[SimBriefProxy] = None) -> FastAPI:
    """
    Application factory.

    Args:
        config: Relay settings; read from the environment when omitted.
        simbrief: Planning proxy; built from ``config.simbrief`` when omitted.
    """
    config = config or RelayConfig.from_env()
    started_at = time.monotonic()

    registry = FlightChannelRegistry()
    ingest_handler = TelemetryIngestHandler(registry, config.ingest_token)
    stream_handler = SubscriberStreamHandler(registry, config.keepalive_interval_seconds)
    simbrief = simbrief or SimBriefProxy(config.simbrief)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("=" * 50)
        logger.info(f"Wheels Relay {__version__} - Starting")
        logger.info("=" * 50)
        if config.ingest_token == RelayConfig.ingest_token:
            logger.warning("INGEST_TOKEN is the built-in default; set it before exposing /ingest")
        logger.info(f"Keepalive interval: {config.keepalive_interval_seconds}s")
        yield
        logger.info(
            f"Shutting down with {registry.subscriber_count()} open streams "
            f"across {registry.channel_count()} channels"
        )

    app = FastAPI(
        title="Wheels Relay API",
        description="Live telemetry relay and flight-plan proxy",
        version=__version__,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.registry = registry
    app.state.simbrief = simbrief

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", INGEST_TOKEN_HEADER],
    )

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Middleware to track HTTP requests."""
        response = await call_next(request)
        HTTP_REQUESTS.labels(
            method=request.method,
            path=request.url.path,
            status=response.status_code
        ).inc()
        return response

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "OK"

    @app.get("/api/health")
    async def health():
        """Health check endpoint."""
        return HealthStatus(
            uptime=time.monotonic() - started_at,
            channels=registry.channel_count(),
            subscribers=registry.subscriber_count(),
        ).model_dump()

    @app.post("/ingest")
    async def ingest(request: Request, flight: Optional[str] = Query(None)):
        """
        Accept one telemetry sample.

        POST /ingest?flight=WHEELS735
        Headers: X-Ingest-Token: <token>
        Body: { lat, lon, alt_ft?, hdg_deg?, gs_kts?, vs_fpm?, tas_kts?, serverTs? }
        """
        token = request.headers.get(INGEST_TOKEN_HEADER)
        raw_body = await request.body()
        try:
            payload = json.loads(raw_body) if raw_body else {}
        except ValueError:
            payload = None

        body_flight = payload.get("flight") if isinstance(payload, dict) else None
        flight_id = resolve_flight_id(flight, body_flight)

        # Undecodable JSON reaches the handler as None: still 403 before 400
        ingest_handler.ingest(flight_id, payload, token)
        return IngestAck().model_dump()

    @app.get("/stream")
    async def stream(flight: str = Query(DEFAULT_FLIGHT_ID)):
        """
        Server-Sent Events feed for one flight.

        GET /stream?flight=WHEELS735
        Replays the last known sample, then pushes every new one, with a
        keepalive comment between samples.
        """
        return stream_handler.open(resolve_flight_id(flight))

    @app.get("/simbrief/latest")
    def simbrief_latest(username: str = "", userid: str = ""):
        """Latest OFP summary for ?username= or ?userid= (or SIMBRIEF_USER)."""
        return simbrief.latest_meta(username=username, userid=userid)

    @app.get("/api/route")
    def planned_route(user: str = "", userid: str = "", ofp_id: str = ""):
        """Planned route as GeoJSON line plus fix points."""
        return simbrief.planned_route(user=user, userid=userid, ofp_id=ofp_id)

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return await get_metrics()

    if config.public_dir.is_dir():
        app.mount("/", PublicFiles(directory=config.public_dir), name="public")
        logger.info(f"Serving static files from {config.public_dir}")

    return app


def main():
    import uvicorn

    config = RelayConfig.from_env()
    configure_logging(config.log_level)
    logger.info(f"Wheels Relay listening on http://{config.host}:{config.port}")
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
