"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./fleetops.yaml (working directory)
3. ~/.fleetops/config.yaml (user home)

Environment variables override YAML: FLEETOPS_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "FLEETOPS_"
_LOG_LEVELS = {"critical", "error", "warning", "info", "debug"}


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class ServerConfig(BaseModel):
    """Configuration for the HTTP API server."""

    host: str = "127.0.0.1"
    port: int = Field(8000, ge=1, le=65535)
    log_level: str = "info"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.lower()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


class IngestConfig(BaseModel):
    """Tunables for the ingestion engine."""

    concurrency: int = Field(5, ge=1)
    max_rows: int = Field(500, ge=1)
    max_file_bytes: int = Field(10 * 1024 * 1024, ge=1)
    default_uploader: str = Field("system", min_length=1)


class FleetOpsConfig(BaseModel):
    """Top-level configuration for the bulk ingestion CLI and server."""

    server: ServerConfig = ServerConfig()
    ingest: IngestConfig = IngestConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "fleetops.yaml",
        Path.cwd() / "fleetops.yml",
        Path.home() / ".fleetops" / "config.yaml",
        Path.home() / ".fleetops" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply FLEETOPS_<SECTION>_<KEY> env var overrides to config data.

    For example, ``FLEETOPS_INGEST_MAX_ROWS`` maps to section ``ingest``,
    field ``max_rows``. Unknown sections are ignored.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    known_sections = sorted(FleetOpsConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Coerce to int, bool, or keep as string
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> FleetOpsConfig | None:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.fleetops/).

    Returns:
        Parsed and validated FleetOpsConfig, or None if no config found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return FleetOpsConfig(**data)


def resolve_config(config_path: str | None = None) -> FleetOpsConfig:
    """Load configuration, falling back to defaults plus env overrides."""
    config = load_config(config_path)
    if config is not None:
        return config
    return FleetOpsConfig(**_apply_env_overrides({}))


def export_ingest_env(config: FleetOpsConfig) -> None:
    """Expose ingest settings as BULK_* env vars for the API process.

    Variables already set in the environment are left untouched.
    """
    os.environ.setdefault("BULK_CONCURRENCY", str(config.ingest.concurrency))
    os.environ.setdefault("BULK_MAX_ROWS", str(config.ingest.max_rows))
    os.environ.setdefault("BULK_MAX_FILE_BYTES", str(config.ingest.max_file_bytes))
    os.environ.setdefault("BULK_DEFAULT_UPLOADER", config.ingest.default_uploader)
