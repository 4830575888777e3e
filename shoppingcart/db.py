"""
Database Module - Supabase and Redis Clients

Provides lazy singleton instances of:
- Supabase client for the stored-carts table
- Upstash Redis client for session cart slots and cart event streams

The cart engine is synchronous (one writer per session), so only the
sync clients are used.
"""

import os
from typing import Optional

from supabase import create_client, Client
from upstash_redis import Redis

from shoppingcart.errors import StorageUnavailableError


SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

# Upstash Redis - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")


_supabase_client: Optional[Client] = None
_redis_client: Optional[Redis] = None


def get_supabase() -> Client:
    """
    Get Supabase client (singleton).
    Used by SupabaseCartGateway for store/restore/merge.
    """
    global _supabase_client

    if _supabase_client is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
            raise StorageUnavailableError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _supabase_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)

    return _supabase_client


def get_redis() -> Redis:
    """
    Get Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN

    Used for:
    - Session cart slots (one key per session and instance)
    - Coupon / shipping-country side channels
    - Cart event streams
    """
    global _redis_client

    if _redis_client is None:
        if not UPSTASH_REDIS_REST_URL or not UPSTASH_REDIS_REST_TOKEN:
            raise StorageUnavailableError(
                "UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set"
            )
        _redis_client = Redis(url=UPSTASH_REDIS_REST_URL, token=UPSTASH_REDIS_REST_TOKEN)

    return _redis_client


class RedisKeys:
    """Redis key prefixes for cart data."""

    SESSION = "session:"  # session:{session_id}:{key}

    # Event streams
    CART_EVENTS = "stream:cart:events"

    @staticmethod
    def session_key(session_id: str, key: str) -> str:
        return f"{RedisKeys.SESSION}{session_id}:{key}"


class TTL:
    """Time-to-live constants for Redis keys (seconds)."""

    SESSION = 86400  # 24 hours, abandoned carts expire
