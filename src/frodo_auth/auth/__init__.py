"""Login flows, deployment detection, and token refresh."""

from frodo_auth.auth.manager import get_tokens
from frodo_auth.auth.scheduler import cancel_auto_refresh, schedule_auto_refresh

__all__ = ["cancel_auto_refresh", "get_tokens", "schedule_auto_refresh"]
