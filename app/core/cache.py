import logging
from typing import Optional, List
from app.core.config import settings
from app.core.redis_cache import RedisCache

logger = logging.getLogger(__name__)

PLAN_CATALOG_KEY = "plans:catalog"

# Global cache instance
_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get global Redis cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance


def get_cached_plans() -> Optional[List[dict]]:
    """Get cached plan catalog (None on miss or when caching is off)."""
    if not settings.plan_cache_enabled:
        return None
    return get_cache().get(PLAN_CATALOG_KEY)


def set_cached_plans(plans: List[dict]):
    """Cache serialized plan catalog."""
    if not settings.plan_cache_enabled:
        return
    get_cache().set(PLAN_CATALOG_KEY, plans, settings.plan_cache_ttl_minutes)


def invalidate_cached_plans():
    if not settings.plan_cache_enabled:
        return
    get_cache().delete(PLAN_CATALOG_KEY)
