"""Early-warning risk probe."""

from outage_radar.precursor.crowd import CrowdReportFeed, keywords_for
from outage_radar.precursor.models import CrowdReport, PrecursorMeasures, PrecursorResult
from outage_radar.precursor.probe import PrecursorProbe


__all__ = [
    "CrowdReport",
    "CrowdReportFeed",
    "PrecursorMeasures",
    "PrecursorProbe",
    "PrecursorResult",
    "keywords_for",
]
