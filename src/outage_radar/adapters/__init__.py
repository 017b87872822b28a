"""Per-format parsers producing provider-agnostic raw results."""

from outage_radar.adapters.base import Adapter, RawIncident, RawResult, to_epoch
from outage_radar.adapters.errors import AdapterError, ParseError
from outage_radar.adapters.feed import AtomAdapter, FeedAdapter, RssAdapter, classify_text
from outage_radar.adapters.registry import ADAPTERS, adapter_for
from outage_radar.adapters.statuspage import StatuspageAdapter


__all__ = [
    "ADAPTERS",
    "Adapter",
    "AdapterError",
    "AtomAdapter",
    "FeedAdapter",
    "ParseError",
    "RawIncident",
    "RawResult",
    "RssAdapter",
    "StatuspageAdapter",
    "adapter_for",
    "classify_text",
    "to_epoch",
]
