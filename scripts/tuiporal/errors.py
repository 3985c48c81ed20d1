"""Error taxonomy shared by every layer of the client."""

from __future__ import annotations


class TuiporalError(Exception):
    """Base class for all errors raised by tuiporal."""


class ConfigError(TuiporalError):
    """Bad or missing profile data. Fatal at startup."""


class ProfileError(TuiporalError):
    """A profile switch was refused; the previous profile stays active."""


class CommandRejected(TuiporalError):
    """A mutating command failed a local precondition and was not sent."""


class RemoteError(TuiporalError):
    """Base for failures of a call against the remote service."""

    kind = "remote"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(RemoteError):
    """Transient network or connection failure."""

    kind = "transport"


class AuthError(RemoteError):
    """The remote service rejected the profile's credentials."""

    kind = "auth"


class RemoteRejected(RemoteError):
    """The service understood the request but declined it."""

    kind = "rejected"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.reason = message
