from __future__ import annotations

from typing import Optional


class PuppetDBBrowserError(Exception):
    """Base class for errors reported back to the host."""
    pass


class ConfigError(PuppetDBBrowserError):
    """Exception raised when the provider configuration cannot be used."""
    pass


class AuthConfigError(ConfigError):
    """Exception raised when an instance has neither a token nor a full certificate set."""
    pass


class RemoteQueryError(PuppetDBBrowserError):
    """Exception raised when a PuppetDB request fails (transport, TLS or server side)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(PuppetDBBrowserError):
    """Exception raised when a PuppetDB response does not have the expected shape."""
    pass


class UnknownEntryError(PuppetDBBrowserError):
    """Exception raised when a path or state record does not name a known entry."""
    pass
