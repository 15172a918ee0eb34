"""HTTP client for the betting backend."""

from roundsync.client.api import BackendClient

__all__ = ["BackendClient"]
