"""Adapter selection by source format."""

from outage_radar.adapters.base import Adapter
from outage_radar.adapters.feed import AtomAdapter, RssAdapter
from outage_radar.adapters.statuspage import StatuspageAdapter
from outage_radar.config.schemas import SourceFormat


ADAPTERS: dict[SourceFormat, type[Adapter]] = {
    SourceFormat.STATUSPAGE: StatuspageAdapter,
    SourceFormat.RSS: RssAdapter,
    SourceFormat.ATOM: AtomAdapter,
}


def adapter_for(source_format: SourceFormat) -> Adapter:
    """Instantiate the adapter for a source format.

    Raises:
        KeyError: If no adapter is registered for the format.
    """
    return ADAPTERS[source_format]()
