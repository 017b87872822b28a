"""Outage monitoring and alerting engine for third-party status sources."""

__version__ = "0.1.0"
