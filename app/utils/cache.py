"""
Cache utilities for LashClub.

Redis-backed caching with graceful fallback to simple in-memory caching,
used for the tier catalog (read on every price quote, written rarely).

Usage:
    from app.utils.cache import cache_tier_catalog, invalidate_tier_catalog

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
              Falls back to simple cache if not set or unavailable.
"""
import os
import logging

from ..extensions import cache

logger = logging.getLogger(__name__)

TIER_CATALOG_KEY = 'tier_catalog:v1'
TIER_CATALOG_TIMEOUT = 300  # 5 minutes

DEFAULT_CACHE_CONFIG = {
    'CACHE_TYPE': 'SimpleCache',  # Fallback: in-memory
    'CACHE_DEFAULT_TIMEOUT': 300,
}


def init_cache(app) -> bool:
    """
    Initialize Flask-Caching with Redis or fallback to simple cache.

    Returns:
        bool: True if Redis connected, False if using fallback
    """
    if app.config.get('CACHE_TYPE'):
        # Explicitly configured (tests use NullCache)
        cache.init_app(app)
        return app.config['CACHE_TYPE'] == 'RedisCache'

    redis_url = os.getenv('REDIS_URL')

    if redis_url:
        try:
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()

            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_DEFAULT_TIMEOUT'] = 300
            app.config['CACHE_KEY_PREFIX'] = 'lashclub:'
            cache.init_app(app)
            logger.info('Cache initialized with Redis')
            return True
        except Exception as e:
            logger.warning(f'Redis unavailable ({e}), falling back to simple cache')

    app.config.update(DEFAULT_CACHE_CONFIG)
    cache.init_app(app)
    logger.info('Cache initialized with SimpleCache (in-memory)')
    return False


def get_cached_tier_catalog():
    return cache.get(TIER_CATALOG_KEY)


def cache_tier_catalog(catalog) -> None:
    cache.set(TIER_CATALOG_KEY, catalog, timeout=TIER_CATALOG_TIMEOUT)


def invalidate_tier_catalog() -> None:
    cache.delete(TIER_CATALOG_KEY)
