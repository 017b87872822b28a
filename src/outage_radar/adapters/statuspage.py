"""Statuspage-style summary.json adapter."""

import json
from typing import Any

from outage_radar.adapters.base import Adapter, RawIncident, RawResult, to_epoch
from outage_radar.adapters.errors import ParseError
from outage_radar.config.schemas import ProviderConfig, SourceFormat


# Incident lifecycle words that close an incident
CLOSED_STATUSES = frozenset({"resolved", "completed", "postmortem"})

INDICATOR_NONE = "none"


class StatuspageAdapter(Adapter):
    """Adapter for Statuspage ``/api/v2/summary.json`` payloads.

    The page-level indicator (none/minor/major/critical/maintenance) is the
    overall raw status. Each incident keeps its own lifecycle and impact
    words. Active scheduled maintenances are reported as maintenance
    incidents. When the indicator is raised but no incident is listed, a
    synthetic incident keyed on the indicator is emitted.
    """

    format = SourceFormat.STATUSPAGE

    def _parse(self, body: bytes, provider: ProviderConfig, now: int) -> RawResult:
        try:
            data = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ParseError(
                f"Invalid JSON: {e}",
                provider_id=provider.id,
                context=body[:200].decode("utf-8", errors="replace"),
            ) from e

        if not isinstance(data, dict):
            raise ParseError("Summary payload is not an object", provider_id=provider.id)

        status_block = data.get("status")
        if not isinstance(status_block, dict) or "indicator" not in status_block:
            raise ParseError("Missing status.indicator", provider_id=provider.id)

        indicator = str(status_block.get("indicator") or INDICATOR_NONE).lower()
        description = str(status_block.get("description") or "")
        page = data.get("page") if isinstance(data.get("page"), dict) else {}
        updated_at = to_epoch(page.get("updated_at"))
        warnings: list[str] = []

        open_incidents: list[RawIncident] = []
        closed: list[RawIncident] = []
        for entry in self._entries(data, "incidents", warnings):
            incident = self._to_raw(entry, provider)
            if incident.status in CLOSED_STATUSES:
                closed.append(incident)
            else:
                open_incidents.append(incident)

        for entry in self._entries(data, "scheduled_maintenances", warnings):
            if str(entry.get("status") or "").lower() != "in_progress":
                continue
            incident = self._to_raw(entry, provider)
            open_incidents.append(
                incident.model_copy(update={"status": "maintenance", "impact": "maintenance"})
            )

        if not open_incidents and indicator != INDICATOR_NONE:
            open_incidents.append(
                RawIncident(
                    source_id=f"indicator:{indicator}",
                    title=description or f"Provider reports {indicator} impact",
                    status=indicator,
                    impact=indicator,
                    url=provider.status_url,
                    started_at=updated_at or now,
                    updated_at=updated_at or now,
                )
            )

        return RawResult(
            status=indicator,
            incidents=open_incidents,
            closed=closed,
            summary=self._summary(description, self._entries(data, "components", warnings)),
            updated_at=updated_at,
            warnings=warnings,
        )

    def _entries(
        self, data: dict[str, Any], key: str, warnings: list[str]
    ) -> list[dict[str, Any]]:
        raw = data.get(key) or []
        if not isinstance(raw, list):
            warnings.append(f"'{key}' is not a list")
            return []
        entries = [entry for entry in raw if isinstance(entry, dict)]
        if len(entries) != len(raw):
            warnings.append(f"Skipped {len(raw) - len(entries)} malformed {key} entries")
        return entries

    def _summary(self, description: str, components: list[dict[str, Any]]) -> str:
        """Page description plus any components not reporting operational."""
        affected = [
            f"{component.get('name')} ({str(component.get('status')).replace('_', ' ')})"
            for component in components
            if component.get("name")
            and str(component.get("status") or "operational").lower() != "operational"
        ]
        if not affected:
            return description
        return "; ".join(filter(None, [description, "Affected: " + ", ".join(affected)]))

    def _to_raw(self, entry: dict[str, Any], provider: ProviderConfig) -> RawIncident:
        components = [
            str(component.get("name") or "")
            for component in self._entries(entry, "components", [])
        ]
        impact = entry.get("impact")
        return RawIncident(
            source_id=str(entry.get("id") or "") or None,
            title=str(entry.get("name") or "Incident"),
            status=str(entry.get("status") or "investigating").lower(),
            impact=str(impact).lower() if impact else None,
            url=str(entry.get("shortlink") or provider.status_url),
            components=components,
            started_at=to_epoch(entry.get("started_at") or entry.get("created_at")),
            updated_at=to_epoch(entry.get("updated_at")),
            resolved_at=to_epoch(entry.get("resolved_at")),
        )
