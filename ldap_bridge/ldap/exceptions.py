"""Typed failures raised by the directory layer.

Every error carries the DN and filter it was raised for (when known), so the
caller can log something useful without re-deriving the context.
"""
from __future__ import annotations


class DirectoryError(Exception):
    """Base class for all directory errors."""

    def __init__(self, message: str, *, dn: str | None = None, filterstr: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.dn = dn
        self.filterstr = filterstr

    def __str__(self) -> str:
        parts = [self.message]
        if self.dn is not None:
            parts.append(f"dn={self.dn!r}")
        if self.filterstr is not None:
            parts.append(f"filter={self.filterstr!r}")
        return " ".join(parts)


class ConfigurationError(DirectoryError):
    """Connection target missing or configuration document invalid."""


class DirectoryConnectionError(DirectoryError):
    """Connect, StartTLS or transport failure while talking to the server."""


class BindError(DirectoryError):
    """An operation needed a bind and could not obtain one."""


class DirectoryOperationError(DirectoryError):
    """read/search/modify failed at the transport level (not "no results")."""


class DNSyntaxError(DirectoryError, ValueError):
    """Malformed distinguished name."""


class PasswordConfirmationMismatch(DirectoryError):
    """Staged new password and its confirmation differ."""
