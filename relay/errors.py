"""
Error taxonomy for the relay.

HTTP-facing errors carry a status code and are rendered as JSON by the
exception handler registered in ``relay.main``. ``WriteFailure`` is internal
to fan-out and never reaches a client.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for errors that map to an HTTP response."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> dict:
        return {"error": self.message}


class Unauthorized(RelayError):
    """Bad or missing ingest token."""
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class BadRequest(RelayError):
    """Malformed request (bad telemetry payload, missing proxy user)."""
    status_code = 400


class NotFound(RelayError):
    status_code = 404


class UpstreamError(RelayError):
    """Planning API fetch or decode failed."""
    status_code = 500

    def to_body(self) -> dict:
        return {"ok": False, "error": self.message}


class WriteFailure(Exception):
    """A write to a subscriber sink failed (connection already closed)."""
