"""Telemetry core of the reproq worker dashboard."""

__version__ = "0.1.0"
