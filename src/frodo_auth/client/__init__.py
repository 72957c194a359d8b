"""HTTP access to the AM endpoints used during login."""

from frodo_auth.client.async_client import AmClient

__all__ = ["AmClient"]
