"""HTTP surface for the authorization service."""
