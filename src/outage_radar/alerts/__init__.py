"""Alert composition and dispatch."""

from outage_radar.alerts.composer import AlertComposer, ComposedMessage, short_title
from outage_radar.alerts.dispatcher import AlertDispatcher, DispatchResult, Mailer


__all__ = [
    "AlertComposer",
    "AlertDispatcher",
    "ComposedMessage",
    "DispatchResult",
    "Mailer",
    "short_title",
]
