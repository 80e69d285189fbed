"""
Cache utilities for the Prode application
Caching decorators for read endpoints and invalidation after scoring runs
"""

import functools

from flask import current_app, has_app_context, request
from flask_login import current_user

from prode import cache


def make_cache_key(*args, **kwargs):
    """Generate a cache key from request path, query string, caller and arguments"""
    path = request.full_path
    user_part = current_user.get_id() if current_user.is_authenticated else "anon"
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{path}_{user_part}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=300, key_prefix="view"):
    """
    Decorator for caching route payloads

    The wrapped view must return plain data (dict or (dict, status)) so the
    value can be stored by any cache backend.

    Args:
        timeout: Cache timeout in seconds (default 5 minutes)
        key_prefix: Prefix for cache key
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate cache keys matching a pattern

    Args:
        pattern: Pattern to match cache keys
    """
    if not has_app_context():
        return
    try:
        # SimpleCache can't delete by pattern, so drop everything
        cache.clear()
        current_app.logger.info(f"Cache cleared for pattern: {pattern}")
    except Exception as e:
        # A cache outage must not fail a committed scoring run
        current_app.logger.error(f"Failed to clear cache: {e}")


def invalidate_leaderboard_cache():
    """Drop cached leaderboard responses after points change"""
    invalidate_cache_pattern("*leaderboard*")
