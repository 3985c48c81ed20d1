"""
Connection profiles and the store that tracks which one is active.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

from tuiporal.errors import ConfigError, ProfileError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoCredential:
    """Plain connection, no client authentication."""


@dataclass(frozen=True)
class ApiKeyCredential:
    """Bearer API key sent with every request."""

    api_key: str = field(repr=False)


@dataclass(frozen=True)
class MtlsCredential:
    """Client certificate bundle for mutual TLS."""

    cert_path: Path
    key_path: Path


Credential = Union[NoCredential, ApiKeyCredential, MtlsCredential]


@dataclass(frozen=True)
class Profile:
    """A named bundle of address, namespace and credentials."""

    name: str
    address: str
    namespace: str = "default"
    credential: Credential = field(default_factory=NoCredential)
    tls_enabled: bool = False
    ca_path: Path | None = None
    server_name: str | None = None

    @property
    def uses_tls(self) -> bool:
        # API keys are only ever sent over TLS.
        return self.tls_enabled or isinstance(self.credential, ApiKeyCredential)


def validate_profile(profile: Profile) -> None:
    """Check a profile is internally consistent. Raises ConfigError."""
    if not profile.name:
        raise ConfigError("Profile name must not be empty")
    host, sep, port = profile.address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(
            f"Profile '{profile.name}': address must be host:port, got '{profile.address}'"
        )
    if not profile.namespace:
        raise ConfigError(f"Profile '{profile.name}': namespace must not be empty")
    if isinstance(profile.credential, MtlsCredential) and not profile.tls_enabled:
        raise ConfigError(
            f"Profile '{profile.name}': client certificate configured but TLS is disabled"
        )


def check_credentials(profile: Profile) -> list[str]:
    """Return problems with the credential material (empty if usable)."""
    problems: list[str] = []
    credential = profile.credential

    if isinstance(credential, ApiKeyCredential) and not credential.api_key.strip():
        problems.append("API key is empty")
    if isinstance(credential, MtlsCredential):
        for label, path in (("certificate", credential.cert_path), ("key", credential.key_path)):
            if not Path(path).expanduser().is_file():
                problems.append(f"TLS {label} not found: {path}")
    if profile.ca_path is not None and not Path(profile.ca_path).expanduser().is_file():
        problems.append(f"CA certificate not found: {profile.ca_path}")

    return problems


class ProfileStore:
    """Holds the named profiles and exactly one active profile."""

    def __init__(self, profiles: dict[str, Profile], active_name: str):
        if active_name not in profiles:
            raise ConfigError(f"Active profile '{active_name}' is not defined")
        self._profiles = dict(profiles)
        self._active_name = active_name

    @classmethod
    def load(
        cls, profiles: Iterable[Profile], active_name: str | None = None
    ) -> "ProfileStore":
        """Build a store, failing fast on inconsistent profile data."""
        by_name: dict[str, Profile] = {}
        for profile in profiles:
            validate_profile(profile)
            if profile.name in by_name:
                raise ConfigError(f"Duplicate profile name '{profile.name}'")
            by_name[profile.name] = profile

        if not by_name:
            raise ConfigError("No connection profiles configured")

        if active_name is None:
            active_name = next(iter(by_name))
        elif active_name not in by_name:
            known = ", ".join(sorted(by_name))
            raise ConfigError(
                f"Active profile '{active_name}' does not match any profile ({known})"
            )

        return cls(by_name, active_name)

    @property
    def active(self) -> Profile:
        return self._profiles[self._active_name]

    @property
    def names(self) -> list[str]:
        return list(self._profiles)

    def get(self, name: str) -> Profile | None:
        return self._profiles.get(name)

    def next_name(self) -> str:
        """Name of the profile after the active one, wrapping around."""
        names = self.names
        index = names.index(self._active_name)
        return names[(index + 1) % len(names)]

    def switch(self, name: str) -> Profile:
        """Make ``name`` the active profile.

        All-or-nothing: on ProfileError the previous profile stays active.
        """
        profile = self._profiles.get(name)
        if profile is None:
            raise ProfileError(f"Unknown profile '{name}'")

        problems = check_credentials(profile)
        if problems:
            raise ProfileError(f"Profile '{name}': " + "; ".join(problems))

        previous = self._active_name
        self._active_name = name
        logger.info("Switched profile", extra={"from_profile": previous, "to_profile": name})
        return profile
