"""LDAP bridge: map application logins onto LDAP directory entries."""

__version__ = "0.1.0"
