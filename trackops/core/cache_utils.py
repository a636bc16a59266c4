"""
Caching utilities for expensive dashboard queries.

Dashboard entries are keyed by a generation counter, so invalidation bumps
the counter instead of scanning keys and works on every cache backend.
"""
from django.core.cache import cache
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes

DASHBOARD_GENERATION_KEY = 'dashboard:generation'


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def get_dashboard_generation():
    generation = cache.get(DASHBOARD_GENERATION_KEY)
    if generation is None:
        generation = 1
        cache.set(DASHBOARD_GENERATION_KEY, generation, None)
    return generation


def get_cached_dashboard(name, *args):
    """Return (cached_data, cache_key) for a dashboard payload"""
    cache_key = make_cache_key(f"dashboard_{name}", get_dashboard_generation(), *args)
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache HIT for dashboard_{name}: {cache_key}")
    else:
        logger.debug(f"Cache MISS for dashboard_{name}: {cache_key}")
    return cached_data, cache_key


def cache_dashboard(cache_key, data, ttl=DASHBOARD_CACHE_TTL):
    cache.set(cache_key, data, ttl)
    logger.debug(f"Cached dashboard data: {cache_key}")


def invalidate_dashboard_cache():
    """Invalidate every cached dashboard payload"""
    try:
        cache.incr(DASHBOARD_GENERATION_KEY)
    except ValueError:
        # Counter missing or evicted
        cache.set(DASHBOARD_GENERATION_KEY, 2, None)
    logger.debug("Invalidated dashboard cache")
