"""Custom exceptions for Warden."""


class WardenError(Exception):
    """Base exception for all Warden errors."""

    pass


class ConfigurationError(WardenError):
    """Error in configuration or settings."""

    pass
