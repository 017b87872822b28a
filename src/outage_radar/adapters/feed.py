"""RSS and Atom incident feed adapters."""

import calendar
import re
from typing import Any

import feedparser  # type: ignore[import-untyped]

from outage_radar.adapters.base import Adapter, RawIncident, RawResult
from outage_radar.adapters.errors import ParseError
from outage_radar.config.schemas import ProviderConfig, SourceFormat
from outage_radar.model.status import normalize_status, severity_rank


MAX_FEED_ITEMS = 10
RECENT_WINDOW_SECONDS = 48 * 3600

RAW_RESOLVED = "resolved"
RAW_OUTAGE = "outage"
RAW_DEGRADED = "degraded"
RAW_INCIDENT = "incident"
RAW_OPERATIONAL = "operational"

_TAG_RE = re.compile(r"<[^>]+>")
_DEGRADED_WORDS = ("degraded", "disruption", "incident")


def classify_text(text: str) -> str:
    """Keyword scan of an item's title and description.

    Returns:
        Raw status word: resolved, outage, degraded or incident.
    """
    lowered = text.lower()
    if RAW_RESOLVED in lowered:
        return RAW_RESOLVED
    if RAW_OUTAGE in lowered:
        return RAW_OUTAGE
    if any(word in lowered for word in _DEGRADED_WORDS):
        return RAW_DEGRADED
    return RAW_INCIDENT


def _entry_time(entry: Any) -> int | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return calendar.timegm(parsed)
    return None


class FeedAdapter(Adapter):
    """Shared feedparser-based parsing for RSS 2.0 and Atom 1.0.

    Items are sorted newest first and capped before aggregation. Only
    unresolved items inside the recency window are open; the worst of
    them sets the overall status.
    """

    def __init__(
        self,
        max_items: int = MAX_FEED_ITEMS,
        recent_window_seconds: int = RECENT_WINDOW_SECONDS,
    ) -> None:
        """Initialize the adapter.

        Args:
            max_items: Items considered per feed.
            recent_window_seconds: Age beyond which an item no longer counts as open.
        """
        self._max_items = max_items
        self._recent_window_seconds = recent_window_seconds

    def _parse(self, body: bytes, provider: ProviderConfig, now: int) -> RawResult:
        feed = feedparser.parse(body)
        warnings: list[str] = []

        if feed.bozo and feed.bozo_exception:
            if not feed.entries and not feed.get("version"):
                raise ParseError(
                    f"Unreadable feed: {feed.bozo_exception}",
                    provider_id=provider.id,
                    context=body[:200].decode("utf-8", errors="replace"),
                )
            warnings.append(f"Feed parsing warning: {feed.bozo_exception}")

        items = [self._to_raw(entry, provider) for entry in feed.entries]
        items.sort(key=lambda item: item.started_at or 0, reverse=True)
        items = items[: self._max_items]

        cutoff = now - self._recent_window_seconds
        open_items: list[RawIncident] = []
        closed: list[RawIncident] = []
        for item in items:
            is_recent = item.started_at is None or item.started_at >= cutoff
            if item.status == RAW_RESOLVED or not is_recent:
                closed.append(item)
            else:
                open_items.append(item)

        status = RAW_OPERATIONAL
        if open_items:
            worst = max(
                open_items,
                key=lambda item: severity_rank(normalize_status(item.status)),
            )
            status = worst.status

        return RawResult(
            status=status,
            incidents=open_items,
            closed=closed,
            updated_at=items[0].updated_at if items else None,
            warnings=warnings,
        )

    def _to_raw(self, entry: Any, provider: ProviderConfig) -> RawIncident:
        title = str(entry.get("title") or "Incident").strip()
        description = _TAG_RE.sub(" ", str(entry.get("summary") or ""))
        raw_status = classify_text(f"{title} {description}")
        started_at = _entry_time(entry)
        updated = entry.get("updated_parsed")
        return RawIncident(
            source_id=str(entry.get("id") or "") or None,
            title=title,
            status=raw_status,
            url=str(entry.get("link") or provider.status_url),
            started_at=started_at,
            updated_at=calendar.timegm(updated) if updated else started_at,
            resolved_at=started_at if raw_status == RAW_RESOLVED else None,
        )


class RssAdapter(FeedAdapter):
    """Adapter for RSS 2.0 incident feeds."""

    format = SourceFormat.RSS


class AtomAdapter(FeedAdapter):
    """Adapter for Atom 1.0 incident feeds."""

    format = SourceFormat.ATOM
