"""Provider directory and noise-rule configuration."""

from outage_radar.config.defaults import DEFAULT_NOISE_RULES, DEFAULT_PROVIDERS
from outage_radar.config.loader import (
    ConfigValidationError,
    load_noise_rules,
    load_providers,
)
from outage_radar.config.schemas import (
    NoiseRule,
    NoiseRules,
    ProviderConfig,
    ProvidersConfig,
    SourceFormat,
)


__all__ = [
    "DEFAULT_NOISE_RULES",
    "DEFAULT_PROVIDERS",
    "ConfigValidationError",
    "NoiseRule",
    "NoiseRules",
    "ProviderConfig",
    "ProvidersConfig",
    "SourceFormat",
    "load_noise_rules",
    "load_providers",
]
