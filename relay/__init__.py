"""
Wheels Relay - live telemetry fan-out from a flight simulator to browser viewers.
"""

__version__ = "1.0.0"
