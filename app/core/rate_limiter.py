from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)


def get_user_rate_limit_key(request: Request) -> str:
    """Get rate limit key from user_id in request state (set by get_current_user)"""
    user_id = getattr(request.state, 'user_id', None)
    if user_id:
        return f"user:{user_id}"
    # Fallback to IP address
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)
