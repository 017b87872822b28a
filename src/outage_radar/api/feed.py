"""Status feed built from the cached snapshot."""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import format_datetime

import structlog
from jinja2 import Environment, PackageLoader, select_autoescape
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.incidents.classifier import IncidentClassifier
from outage_radar.model.status import Status
from outage_radar.snapshot.cache import SnapshotCache
from outage_radar.store.models import Severity


logger = structlog.get_logger()

MAX_FEED_ITEMS = 50
OPERATIONAL_TITLE = "All systems operational"
OPERATIONAL_DESCRIPTION = "No active incidents reported across monitored providers."
UNAVAILABLE_TITLE = "Status unavailable"
UNAVAILABLE_DESCRIPTION = "The provider status page could not be retrieved."
NO_DATA_DESCRIPTION = "No provider status has been collected yet."


def rfc822(epoch: int) -> str:
    """Format epoch seconds as an RSS pubDate."""
    return format_datetime(datetime.fromtimestamp(epoch, UTC))


class FeedItem(BaseModel):
    """One entry of the status feed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    guid: str
    title: str
    link: str = ""
    description: str = ""
    severity: Severity = Severity.INFO
    published_at: int = Field(ge=0)

    @property
    def pub_date(self) -> str:
        """RFC 822 publication date."""
        return rfc822(self.published_at)


class StatusFeed(BaseModel):
    """Feed items, newest first, with the newest item time.

    ``stale`` is set when the items come from the last-good snapshot or
    when no snapshot exists.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    items: list[FeedItem] = Field(default_factory=list)
    last_updated: int = Field(ge=0)
    stale: bool = False


class FeedBuilder:
    """Turns the current snapshot into a deduplicated incident feed."""

    def __init__(
        self,
        snapshot_cache: SnapshotCache,
        classifier: IncidentClassifier,
        title: str = "Outage Radar status feed",
        link: str = "",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the feed builder.

        Args:
            snapshot_cache: Source of provider views and incidents.
            classifier: Labels each item with a severity.
            title: Channel title for the RSS rendering.
            link: Channel link and placeholder item link.
            clock: Returns the current epoch seconds.
        """
        self._snapshot = snapshot_cache
        self._classifier = classifier
        self._title = title
        self._link = link
        self._clock = clock
        self._env = Environment(
            loader=PackageLoader("outage_radar.api", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._log = logger.bind(component="feed")

    def build(self) -> StatusFeed:
        """Build the feed.

        Items are keyed by ``provider|id`` so an incident listed twice
        appears once. Providers whose status could not be fetched get a
        "Status unavailable" item. Sorted newest first and capped at 50.
        The operational placeholder is used only when every provider
        reported and none has an incident; a snapshot with no data at all
        yields a single unavailable notice instead.
        """
        snapshot = self._snapshot.read()
        fallback = snapshot.updated_at or int(self._clock())
        day = datetime.fromtimestamp(fallback, UTC).strftime("%Y%m%d")
        items: dict[str, FeedItem] = {}
        for service in snapshot.services:
            if service.status == Status.UNKNOWN.value:
                key = f"{service.id}|unavailable-{day}"
                items[key] = FeedItem(
                    guid=key,
                    title=f"{service.name} - {UNAVAILABLE_TITLE}",
                    link=service.url,
                    description=service.error or UNAVAILABLE_DESCRIPTION,
                    severity=Severity.INFO,
                    published_at=service.updated_at or fallback,
                )
            for incident in service.incidents:
                if incident.key in items:
                    continue
                classification = self._classifier.classify(
                    incident.provider, incident.title, incident.status
                )
                items[incident.key] = FeedItem(
                    guid=incident.key,
                    title=f"{service.name} - {incident.title} ({incident.status.label})",
                    link=incident.url or service.url,
                    description=classification.summary,
                    severity=classification.severity,
                    published_at=incident.resolved_at or incident.detected_at,
                )

        ordered = sorted(items.values(), key=lambda i: (-i.published_at, i.guid))
        ordered = ordered[:MAX_FEED_ITEMS]

        if not ordered and not snapshot.services:
            ordered = [
                FeedItem(
                    guid=f"outage-radar-unavailable-{day}",
                    title=UNAVAILABLE_TITLE,
                    link=self._link,
                    description=NO_DATA_DESCRIPTION,
                    severity=Severity.INFO,
                    published_at=fallback,
                )
            ]
        elif not ordered:
            ordered = [
                FeedItem(
                    guid=f"outage-radar-status-{day}",
                    title=OPERATIONAL_TITLE,
                    link=self._link,
                    description=OPERATIONAL_DESCRIPTION,
                    published_at=fallback,
                )
            ]

        last_updated = max(i.published_at for i in ordered)
        self._log.debug("feed_built", items=len(ordered), stale=snapshot.stale)
        return StatusFeed(items=ordered, last_updated=last_updated, stale=snapshot.stale)

    def render_rss(self, feed: StatusFeed | None = None) -> str:
        """Render the feed as RSS 2.0 XML."""
        feed = feed or self.build()
        return self._env.get_template("feed.xml").render(
            title=self._title,
            link=self._link,
            last_build_date=rfc822(feed.last_updated),
            stale=feed.stale,
            items=feed.items,
        )
