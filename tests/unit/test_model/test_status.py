"""Tests for status normalization and ranking."""

import pytest

from outage_radar.model.status import (
    Status,
    impact_for_status,
    is_degraded_or_worse,
    is_worse,
    normalize_status,
)


class TestNormalizeStatus:
    """Tests for the raw-word normalizer."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("none", Status.OPERATIONAL),
            ("operational", Status.OPERATIONAL),
            ("minor", Status.DEGRADED),
            ("degraded_performance", Status.DEGRADED),
            ("Degraded Performance", Status.DEGRADED),
            ("investigating", Status.DEGRADED),
            ("partial-outage", Status.PARTIAL_OUTAGE),
            ("major", Status.PARTIAL_OUTAGE),
            ("major_outage", Status.MAJOR_OUTAGE),
            ("critical", Status.MAJOR_OUTAGE),
            ("under_maintenance", Status.MAINTENANCE),
            ("resolved", Status.RESOLVED),
            ("postmortem", Status.RESOLVED),
            ("incident", Status.INCIDENT),
        ],
    )
    def test_known_words(self, raw: str, expected: Status) -> None:
        """Test the vocabulary maps onto canonical statuses."""
        assert normalize_status(raw) is expected

    def test_unmapped_word_defaults_to_degraded(self) -> None:
        """Test unknown vocabulary is treated as degraded."""
        assert normalize_status("on_fire", provider_id="github") is Status.DEGRADED
        assert normalize_status(None) is Status.DEGRADED
        assert normalize_status("") is Status.DEGRADED

    def test_impact_overrides_lifecycle_word(self) -> None:
        """Test an impact word beats an open lifecycle word."""
        assert normalize_status("investigating", "critical") is Status.MAJOR_OUTAGE
        assert normalize_status("identified", "major") is Status.PARTIAL_OUTAGE
        assert normalize_status("monitoring", "none") is Status.DEGRADED

    def test_closed_lifecycle_ignores_impact(self) -> None:
        """Test a resolved incident stays resolved whatever its impact."""
        assert normalize_status("resolved", "critical") is Status.RESOLVED

    def test_canonical_values_pass_through(self) -> None:
        """Test canonical statuses are returned unchanged."""
        for status in Status:
            if status is Status.UNKNOWN:
                continue
            assert normalize_status(status) is status

    def test_unknown_never_produced(self) -> None:
        """Test UNKNOWN is never an incident status."""
        assert normalize_status(Status.UNKNOWN) is Status.DEGRADED
        assert normalize_status("unknown") is Status.DEGRADED


class TestRanking:
    """Tests for severity comparisons."""

    def test_is_worse(self) -> None:
        """Test strict severity ordering."""
        assert is_worse(Status.MAJOR_OUTAGE, Status.DEGRADED)
        assert is_worse(Status.CRITICAL, Status.MAJOR_OUTAGE)
        assert not is_worse(Status.DEGRADED, Status.DEGRADED)
        assert not is_worse(Status.DEGRADED, Status.PARTIAL_OUTAGE)

    def test_degraded_or_worse(self) -> None:
        """Test which statuses count as active problems."""
        assert is_degraded_or_worse(Status.INCIDENT)
        assert is_degraded_or_worse(Status.CRITICAL)
        assert not is_degraded_or_worse(Status.MAINTENANCE)
        assert not is_degraded_or_worse(Status.UNKNOWN)

    def test_impact_for_status(self) -> None:
        """Test impact words derived from statuses."""
        assert impact_for_status(Status.CRITICAL) == "critical"
        assert impact_for_status(Status.PARTIAL_OUTAGE) == "major"
        assert impact_for_status(Status.DEGRADED) == "minor"
        assert impact_for_status(Status.RESOLVED) == "none"

    def test_labels(self) -> None:
        """Test human labels."""
        assert Status.PARTIAL_OUTAGE.label == "Partial Outage"
        assert Status.UNKNOWN.label == "Unknown"
