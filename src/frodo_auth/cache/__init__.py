"""Encrypted on-disk token cache."""

from frodo_auth.cache.token_cache import TokenCache, purge_expired_tokens

__all__ = ["TokenCache", "purge_expired_tokens"]
