"""Alert message composition with Jinja2 templates."""

import re

from jinja2 import Environment, PackageLoader, select_autoescape
from pydantic import BaseModel, ConfigDict, Field

from outage_radar.model.incident import Incident
from outage_radar.model.status import Status
from outage_radar.precursor.models import PrecursorResult


GUID_HEADER = "X-Outage-Radar-Guid"
DIGEST_WINDOW_MINUTES = 15

_PREFIX_RE = re.compile(
    r"^(Update:|Identified:|Monitoring:|Resolved:|Investigating:)\s*", re.IGNORECASE
)
_TRAILING_RE = re.compile(r"[-–—:]+$")

# Labels used in subjects; other statuses fall back to Degraded
_SUBJECT_LABELS: dict[Status, str] = {
    Status.DEGRADED: "Degraded",
    Status.PARTIAL_OUTAGE: "Partial Outage",
    Status.MAJOR_OUTAGE: "Major Outage",
    Status.CRITICAL: "Critical",
    Status.MAINTENANCE: "Maintenance",
}


def short_title(title: str) -> str:
    """Strip lifecycle prefixes and trailing punctuation from a title."""
    clean = _PREFIX_RE.sub("", title, count=1).strip()
    clean = _TRAILING_RE.sub("", clean).rstrip()
    return clean or "Incident"


class ComposedMessage(BaseModel):
    """A ready-to-send mail: subject, text and HTML bodies, extra headers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    subject: str
    text: str
    html: str
    headers: dict[str, str] = Field(default_factory=dict)


class AlertComposer:
    """Builds incident, recovery, digest and pre-alert messages.

    HTML bodies are rendered with auto-escaping; text bodies are plain.
    """

    def __init__(
        self,
        provider_names: dict[str, str] | None = None,
        unsubscribe_url: str | None = None,
    ) -> None:
        """Initialize the composer.

        Args:
            provider_names: Provider id -> display name.
            unsubscribe_url: One-click unsubscribe target, if any.
        """
        self._provider_names = provider_names or {}
        self._unsubscribe_url = unsubscribe_url
        self._env = Environment(
            loader=PackageLoader("outage_radar.alerts", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def provider_name(self, provider_id: str) -> str:
        """Display name for a provider id."""
        return self._provider_names.get(provider_id) or provider_id.strip() or "Provider"

    def subject_for_incident(self, incident: Incident) -> str:
        """``[Resolved] ...`` for recoveries, ``[Outage Alert] ...`` otherwise."""
        provider = self.provider_name(incident.provider)
        title = short_title(incident.title)
        if incident.is_resolved:
            return f"[Resolved] {provider}: {title}"
        label = _SUBJECT_LABELS.get(incident.status, _SUBJECT_LABELS[Status.DEGRADED])
        return f"[Outage Alert] {provider}: {label} — {title}"

    def compose_incident(self, incident: Incident) -> ComposedMessage:
        """Compose a single incident or recovery alert."""
        context = {
            "provider": self.provider_name(incident.provider),
            "title": short_title(incident.title),
            "status": incident.status.label,
            "resolved": incident.is_resolved,
            "component": incident.component,
            "url": incident.url,
            "unsubscribe_url": self._unsubscribe_url,
        }
        headers = self._headers()
        headers[GUID_HEADER] = incident.key
        return ComposedMessage(
            subject=self.subject_for_incident(incident),
            text=self._render("incident.txt", context),
            html=self._render("incident.html", context),
            headers=headers,
        )

    def compose_digest(self, incidents: list[Incident]) -> ComposedMessage:
        """Compose one digest covering several eligible incidents."""
        items = [
            {
                "provider": self.provider_name(i.provider),
                "title": short_title(i.title),
                "status": i.status.label,
                "url": i.url,
            }
            for i in incidents
        ]
        context = {
            "items": items,
            "window_minutes": DIGEST_WINDOW_MINUTES,
            "unsubscribe_url": self._unsubscribe_url,
        }
        return ComposedMessage(
            subject=(
                f"[Outage Digest] {len(items)} incidents in the last "
                f"{DIGEST_WINDOW_MINUTES} minutes"
            ),
            text=self._render("digest.txt", context),
            html=self._render("digest.html", context),
            headers=self._headers(),
        )

    def compose_prealert(
        self, provider_id: str, precursor: PrecursorResult, status_url: str = ""
    ) -> ComposedMessage:
        """Compose an early-warning message for an operational provider."""
        provider = self.provider_name(provider_id)
        context = {
            "provider": provider,
            "risk": precursor.risk,
            "summary": precursor.summary,
            "signals": precursor.signals,
            "measures": precursor.measures.model_dump(exclude_none=True),
            "url": status_url,
            "unsubscribe_url": self._unsubscribe_url,
        }
        return ComposedMessage(
            subject=f"[Early Warning] {provider}: risk {precursor.risk}/100",
            text=self._render("prealert.txt", context),
            html=self._render("prealert.html", context),
            headers=self._headers(),
        )

    def _headers(self) -> dict[str, str]:
        if not self._unsubscribe_url:
            return {}
        return {
            "List-Unsubscribe": f"<{self._unsubscribe_url}>",
            "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
        }

    def _render(self, template_name: str, context: dict[str, object]) -> str:
        return self._env.get_template(template_name).render(**context)
