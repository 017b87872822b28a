"""Stale-tolerant snapshot cache."""

from outage_radar.snapshot.cache import LAST_GOOD_KEY, LIVE_KEY, SnapshotCache
from outage_radar.snapshot.models import ServiceView, Snapshot


__all__ = [
    "LAST_GOOD_KEY",
    "LIVE_KEY",
    "ServiceView",
    "Snapshot",
    "SnapshotCache",
]
