"""
Redis-based rate limiting for the public checkout endpoints.
Fixed window counter keyed by view and client IP; fails open without Redis.
"""
import logging
from functools import wraps
from typing import Optional

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_checked = False


def get_redis_client() -> Optional[redis.Redis]:
    """Connect once on first use; None when Redis is not configured or unreachable."""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True

    redis_url = getattr(settings, 'REDIS_URL', None)
    if not redis_url:
        return None
    try:
        client = redis.Redis.from_url(redis_url, decode_responses=True, socket_connect_timeout=5)
        client.ping()
        _redis_client = client
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting is disabled and locks use the cache backend.")
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def _limit_headers(max_requests, remaining, ttl):
    return {
        'X-RateLimit-Limit': str(max_requests),
        'X-RateLimit-Remaining': str(remaining),
        'X-RateLimit-Reset': str(ttl),
    }


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Usage:
        @rate_limit(20, 60)  # 20 requests per minute
        def post(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            client = get_redis_client() if getattr(settings, 'RATE_LIMIT_ENABLED', True) else None
            if client is None:
                return view_func(self, request, *args, **kwargs)

            key = f"rate_limit:{self.__class__.__name__}.{view_func.__name__}:{get_client_ip(request)}"
            try:
                current_count = client.incr(key)
                if current_count == 1:
                    client.expire(key, window_seconds)
                ttl = client.ttl(key)
            except redis.RedisError as e:
                logger.error(f"Redis error in rate limiting: {e}")
                return view_func(self, request, *args, **kwargs)

            if current_count > max_requests:
                headers = _limit_headers(max_requests, 0, ttl)
                headers['Retry-After'] = str(ttl)
                return Response(
                    {
                        'error': 'Rate limit exceeded',
                        'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                        'retry_after': ttl,
                    },
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers=headers,
                )

            response = view_func(self, request, *args, **kwargs)
            for name, value in _limit_headers(max_requests, max(0, max_requests - current_count), ttl).items():
                response[name] = value
            return response

        return wrapper
    return decorator
