"""Runtime settings loaded from the environment."""

from outage_radar.settings.app import RadarSettings, get_settings


__all__ = ["RadarSettings", "get_settings"]
