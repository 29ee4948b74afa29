"""Exceptions shared across whalestream packages."""

from __future__ import annotations


class ConfigError(ValueError):
    """Raised when configuration is invalid.

    Configuration errors are fatal: components refuse to start rather than run
    in an undefined state.
    """
