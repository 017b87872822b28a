"""YAML configuration loaders with validation."""

import hashlib
from pathlib import Path
from typing import TypeVar

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from outage_radar.config.schemas import NoiseRules, ProvidersConfig


logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


def _load_yaml_file(file_path: Path) -> tuple[dict[str, object], str]:
    """Load a YAML file and compute its checksum.

    Raises:
        ConfigValidationError: If the file is missing or not valid YAML.
    """
    try:
        content_bytes = file_path.read_bytes()
    except FileNotFoundError as e:
        raise ConfigValidationError(
            [{"loc": "", "msg": f"File not found: {e}", "type": "file_not_found"}],
            str(file_path),
        ) from e

    checksum = hashlib.sha256(content_bytes).hexdigest()
    try:
        parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(
            [{"loc": "", "msg": str(e), "type": "yaml_error"}],
            str(file_path),
        ) from e
    if not isinstance(parsed, dict):
        raise ConfigValidationError(
            [{"loc": "", "msg": "Top level must be a mapping", "type": "type_error"}],
            str(file_path),
        )
    return parsed, checksum


def _validate(model: type[ModelT], file_path: Path) -> ModelT:
    log = logger.bind(component="config", file_path=str(file_path))
    data, checksum = _load_yaml_file(file_path)
    try:
        config = model.model_validate(data)
    except ValidationError as e:
        errors = [
            {
                "loc": ".".join(str(part) for part in err["loc"]),
                "msg": err["msg"],
                "type": err["type"],
            }
            for err in e.errors()
        ]
        log.error("config_validation_failed", error_count=len(errors))
        raise ConfigValidationError(errors, str(file_path)) from e

    log.info("config_file_loaded", file_sha256=checksum, model=model.__name__)
    return config


def load_providers(file_path: Path) -> ProvidersConfig:
    """Load and validate a providers.yaml file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Validated provider directory.

    Raises:
        ConfigValidationError: If the file is missing or invalid.
    """
    return _validate(ProvidersConfig, file_path)


def load_noise_rules(file_path: Path) -> NoiseRules:
    """Load and validate a noise.yaml file.

    Args:
        file_path: Path to the YAML file.

    Returns:
        Validated noise rules.

    Raises:
        ConfigValidationError: If the file is missing or invalid.
    """
    return _validate(NoiseRules, file_path)
