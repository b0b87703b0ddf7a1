"""LDAP directory client package.

Public API:
    - ConnectionSettings
    - DirectoryConnection
    - DirectoryClient
    - error classes from .exceptions
"""

from .models import BindKind, BindState, ConnectionSettings, Entry
from .connection import DirectoryConnection
from .client import DirectoryClient
from .exceptions import (
    BindError,
    ConfigurationError,
    DirectoryConnectionError,
    DirectoryError,
    DirectoryOperationError,
    DNSyntaxError,
    PasswordConfirmationMismatch,
)

__all__ = [
    "BindKind",
    "BindState",
    "ConnectionSettings",
    "Entry",
    "DirectoryConnection",
    "DirectoryClient",
    "BindError",
    "ConfigurationError",
    "DirectoryConnectionError",
    "DirectoryError",
    "DirectoryOperationError",
    "DNSyntaxError",
    "PasswordConfirmationMismatch",
]
