"""Incident classification, alert throttling, retention and history."""

from outage_radar.incidents.classifier import Classification, IncidentClassifier
from outage_radar.incidents.history import HistoryLog, HistoryReport, ProviderHistory
from outage_radar.incidents.metrics import AlertMetrics, SuppressReason
from outage_radar.incidents.store import IncidentStore


__all__ = [
    "AlertMetrics",
    "Classification",
    "HistoryLog",
    "HistoryReport",
    "IncidentClassifier",
    "IncidentStore",
    "ProviderHistory",
    "SuppressReason",
]
