"""Crowd-report trend feed with a short-lived cache."""

import calendar
import re
import time
from collections.abc import Callable
from typing import Any

import feedparser
import structlog

from outage_radar.config.schemas import ProviderConfig
from outage_radar.fetch.client import HttpFetcher
from outage_radar.fetch.models import FetchOptions
from outage_radar.precursor.models import CrowdReport
from outage_radar.store.protocols import KeyValueStore


logger = structlog.get_logger()

CROWD_CACHE_KEY = "precursor:crowd_reports"
CROWD_CACHE_TTL_SECONDS = 300
DEFAULT_WINDOW_MINUTES = 120
MIN_WINDOW_MINUTES = 10
FEED_ACCEPT = "application/rss+xml, application/xml;q=0.9,*/*;q=0.8"


def keywords_for(provider: ProviderConfig) -> list[str]:
    """Lower-cased name, id and aliases, deduplicated in that order."""
    keywords: list[str] = []
    for word in (provider.name, provider.id, *provider.aliases):
        word = word.strip().lower()
        if word and word not in keywords:
            keywords.append(word)
    return keywords


def keyword_pattern(keywords: list[str]) -> re.Pattern[str]:
    """Case-insensitive whole-word alternation of the keywords."""
    words = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"(?<!\w)(?:{words})(?!\w)", re.IGNORECASE)


def _entry_time(entry: Any) -> int | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return calendar.timegm(parsed)
    return None


class CrowdReportFeed:
    """Polls a third-party crowd-report RSS feed and matches providers.

    The parsed feed is cached for five minutes; fetch or parse failures
    cache an empty list for the same period so a dead feed is not
    hammered on every provider evaluation.
    """

    def __init__(  # noqa: PLR0913
        self,
        fetcher: HttpFetcher,
        cache: KeyValueStore,
        feed_url: str,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        timeout_seconds: float = 6.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the feed.

        Args:
            fetcher: HTTP fetcher.
            cache: Short-TTL cache for the parsed entries.
            feed_url: RSS feed of recent crowd reports.
            window_minutes: Reports older than this never match.
            timeout_seconds: Fetch timeout.
            clock: Returns the current epoch seconds.
        """
        self._fetcher = fetcher
        self._cache = cache
        self._feed_url = feed_url
        self._window_seconds = max(MIN_WINDOW_MINUTES, window_minutes) * 60
        self._timeout_seconds = max(2.0, timeout_seconds)
        self._clock = clock
        self._log = logger.bind(component="crowd_feed")

    def reports(self) -> list[CrowdReport]:
        """Return cached reports, fetching the feed when the cache is cold."""
        cached = self._cache.get(CROWD_CACHE_KEY)
        if isinstance(cached, list):
            return [CrowdReport.model_validate(entry) for entry in cached]

        reports = self._fetch()
        self._cache.set(
            CROWD_CACHE_KEY,
            [report.model_dump() for report in reports],
            ttl_seconds=CROWD_CACHE_TTL_SECONDS,
        )
        return reports

    def matches(self, provider: ProviderConfig, now: int | None = None) -> list[CrowdReport]:
        """Recent reports whose title mentions the provider, newest first."""
        now = int(self._clock()) if now is None else now
        keywords = keywords_for(provider)
        if not keywords:
            return []

        pattern = keyword_pattern(keywords)
        cutoff = now - self._window_seconds
        matched: list[CrowdReport] = []
        for report in self.reports():
            if report.timestamp and report.timestamp < cutoff:
                continue
            if pattern.search(report.title):
                age = max(0, round((now - report.timestamp) / 60))
                matched.append(report.model_copy(update={"age_minutes": age}))
        return matched

    def _fetch(self) -> list[CrowdReport]:
        result = self._fetcher.get(
            self._feed_url,
            FetchOptions(
                timeout_seconds=self._timeout_seconds,
                headers={"Accept": FEED_ACCEPT},
            ),
        )
        if not result.ok or not result.body.strip():
            self._log.warning(
                "crowd_feed_unavailable",
                status=result.status,
                error=result.error.message if result.error else None,
            )
            return []

        parsed = feedparser.parse(result.body)
        now = int(self._clock())
        reports: list[CrowdReport] = []
        for entry in parsed.entries:
            title = str(entry.get("title", "")).strip()
            if not title:
                continue
            timestamp = _entry_time(entry) or now
            reports.append(
                CrowdReport(title=title, timestamp=timestamp, link=str(entry.get("link", "")))
            )

        reports.sort(key=lambda r: r.timestamp, reverse=True)
        self._log.debug("crowd_feed_parsed", reports=len(reports))
        return reports
