"""Resilient HTTP fetch layer."""

from outage_radar.fetch.client import HttpFetcher, ipv4_transport
from outage_radar.fetch.metrics import FetchMetrics
from outage_radar.fetch.models import (
    FetchError,
    FetchErrorClass,
    FetchOptions,
    FetchResult,
)


__all__ = [
    "FetchError",
    "FetchErrorClass",
    "FetchMetrics",
    "FetchOptions",
    "FetchResult",
    "HttpFetcher",
    "ipv4_transport",
]
