"""
Configuration loading for tuiporal.

Reads ``~/.tuiporal/config.yaml`` (or ``$TUIPORAL_CONFIG``), validates it
against the bundled JSON schema and turns it into Profile records plus
runtime settings.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from jsonschema import SchemaError, ValidationError, validate

from tuiporal.errors import ConfigError
from tuiporal.profiles import (
    ApiKeyCredential,
    Credential,
    MtlsCredential,
    NoCredential,
    Profile,
    ProfileStore,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TUIPORAL_CONFIG"
SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "config.schema.json"


@dataclass(frozen=True)
class Settings:
    """Runtime tunables. Durations are in seconds."""

    poll_interval: float = 5.0
    auto_refresh: bool = True
    search_debounce: float = 0.3
    detail_stale_after: float = 30.0
    request_timeout: float = 10.0
    page_size: int = 50
    max_consecutive_failures: int = 3
    operation_retention: float = 10.0
    history_limit: int = 200


@dataclass(frozen=True)
class Config:
    """Parsed configuration file."""

    profiles: tuple[Profile, ...]
    active_profile: str | None = None
    settings: Settings = field(default_factory=Settings)

    def profile_store(self) -> ProfileStore:
        return ProfileStore.load(self.profiles, self.active_profile)


def config_dir() -> Path:
    return Path.home() / ".tuiporal"


def config_path() -> Path:
    """Location of the config file, honouring the environment override."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return config_dir() / "config.yaml"


def default_config() -> Config:
    """Single local profile, used when no config file exists."""
    return Config(
        profiles=(Profile(name="local", address="localhost:7233", namespace="default"),),
        active_profile="local",
    )


def _validate_schema(data: dict) -> None:
    schema = json.loads(SCHEMA_PATH.read_text())
    try:
        validate(instance=data, schema=schema)
    except SchemaError as e:
        raise ConfigError(f"Invalid config schema: {e.message}") from e
    except ValidationError as e:
        path = " -> ".join(str(p) for p in e.absolute_path) if e.absolute_path else "root"
        raise ConfigError(f"Config error at '{path}': {e.message}") from e


def _optional_path(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


def _credential_from_dict(name: str, data: dict, tls: dict) -> Credential:
    api_key = data.get("api_key")
    cert_path = _optional_path(tls.get("cert_path"))
    key_path = _optional_path(tls.get("key_path"))

    if (cert_path is None) != (key_path is None):
        raise ConfigError(
            f"Profile '{name}': tls.cert_path and tls.key_path must be set together"
        )
    if cert_path is not None and api_key:
        raise ConfigError(
            f"Profile '{name}': configure either api_key or a client certificate, not both"
        )

    if cert_path is not None:
        return MtlsCredential(cert_path=cert_path, key_path=key_path)
    if api_key is not None:
        return ApiKeyCredential(api_key=api_key)
    return NoCredential()


def _profile_from_dict(data: dict) -> Profile:
    """Convert one ``profiles`` entry to a Profile."""
    tls = data.get("tls") or {}
    # A tls block without an explicit flag means TLS is wanted.
    tls_enabled = bool(tls.get("enabled", True)) if data.get("tls") is not None else False

    return Profile(
        name=data["name"],
        address=data["address"],
        namespace=data.get("namespace", "default"),
        credential=_credential_from_dict(data["name"], data, tls),
        tls_enabled=tls_enabled,
        ca_path=_optional_path(tls.get("ca_path")),
        server_name=tls.get("server_name"),
    )


def parse_config(data: dict) -> Config:
    """Validate a decoded config document and build a Config."""
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping at the top level")

    _validate_schema(data)

    profiles = tuple(_profile_from_dict(p) for p in data["profiles"])
    settings = Settings(**(data.get("settings") or {}))
    config = Config(
        profiles=profiles,
        active_profile=data.get("active_profile"),
        settings=settings,
    )
    # Fail fast on duplicate names, unknown active profile, bad addresses.
    config.profile_store()
    return config


def load_config(path: Path | None = None) -> Config:
    """Load configuration from disk, falling back to the default config."""
    path = path or config_path()

    if not path.exists():
        logger.info("Config file not found, using default config", extra={"path": str(path)})
        return default_config()

    logger.info("Loading config", extra={"path": str(path)})
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read {path}: {e}") from e

    return parse_config(data or {})
