"""Warden: multi-tenant authorization core."""

__version__ = "0.1.0"
