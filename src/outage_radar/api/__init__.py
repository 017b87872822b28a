"""Read paths: summary, refresh, history and the status feed."""

from outage_radar.api.feed import FeedBuilder, FeedItem, StatusFeed
from outage_radar.api.read import ReadApi, SummaryResponse, compute_etag


__all__ = [
    "FeedBuilder",
    "FeedItem",
    "ReadApi",
    "StatusFeed",
    "SummaryResponse",
    "compute_etag",
]
