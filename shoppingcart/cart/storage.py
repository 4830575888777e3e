"""Storage for carts: session slots and stored (saved) carts.

Session stores hold the live content of each cart instance for one user
session. Cart gateways hold carts saved under an identifier with
``Cart.store()`` until they are restored, merged or erased.

Both come in an in-memory flavour (tests, single process) and a hosted
flavour (Upstash Redis for sessions, Supabase for stored carts).
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from shoppingcart.db import RedisKeys, TTL, get_redis, get_supabase
from shoppingcart.errors import StorageUnavailableError
from shoppingcart.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)


class SessionKeys:
    """Keys used inside one session."""

    CART_PREFIX = "cart."
    COUPONS = "coupons"
    COUNTRY = "cart_country"

    @staticmethod
    def cart(instance: str) -> str:
        return f"{SessionKeys.CART_PREFIX}{instance}"


class SessionStore(ABC):
    """Key-value storage scoped to one user session.

    Values are JSON-compatible (dicts, lists, strings, numbers).
    """

    @abstractmethod
    def has(self, key: str) -> bool:
        ...

    @abstractmethod
    def get(self, key: str) -> Any:
        """Value for key, or None."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...


class InMemorySessionStore(SessionStore):
    """Process-local session store."""

    def __init__(self, data: Optional[dict] = None) -> None:
        self._data: dict[str, str] = {}
        for key, value in (data or {}).items():
            self.put(key, value)

    def has(self, key: str) -> bool:
        return key in self._data

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, value: Any) -> None:
        # Round-trip through JSON so callers never share mutable state with the store
        self._data[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class RedisSessionStore(SessionStore):
    """Session store on Upstash Redis, one key per session entry with TTL."""

    def __init__(self, session_id: str, redis=None, ttl: int = TTL.SESSION) -> None:
        self.session_id = session_id
        self.ttl = ttl
        self._redis = redis  # Lazy initialization

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def _key(self, key: str) -> str:
        return RedisKeys.session_key(self.session_id, key)

    def has(self, key: str) -> bool:
        try:
            return bool(self.redis.exists(self._key(key)))
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to check session key in Redis: {e}")
            raise StorageUnavailableError(str(e)) from e

    def get(self, key: str) -> Any:
        try:
            raw = self.redis.get(self._key(key))
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to read session from Redis: {e}")
            raise StorageUnavailableError(str(e)) from e

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            # Corrupted data - drop it so the session starts clean
            logger.warning(
                f"Corrupted session data for {sanitize_id_for_logging(self.session_id)}/{key}: {e}"
            )
            self.remove(key)
            return None

    def put(self, key: str, value: Any) -> None:
        try:
            self.redis.set(self._key(key), json.dumps(value), ex=self.ttl)
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to write session to Redis: {e}")
            raise StorageUnavailableError(str(e)) from e

    def remove(self, key: str) -> None:
        try:
            self.redis.delete(self._key(key))
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete session key from Redis: {e}")
            raise StorageUnavailableError(str(e)) from e


class StoredCartRecord(BaseModel):
    """A saved cart: at most one per (identifier, instance)."""
    identifier: str
    instance: str
    content: str  # JSON snapshot, see serializer
    created_at: datetime
    updated_at: datetime

    class Config:
        extra = "ignore"  # Ignore unknown columns from DB

    def to_row(self) -> dict:
        return {
            "identifier": self.identifier,
            "instance": self.instance,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class CartGateway(ABC):
    """Table of stored carts keyed by (identifier, instance)."""

    @abstractmethod
    def exists(self, identifier: str, instance: str) -> bool:
        ...

    @abstractmethod
    def insert(self, record: StoredCartRecord) -> None:
        ...

    @abstractmethod
    def first(self, identifier: str, instance: str) -> Optional[StoredCartRecord]:
        ...

    @abstractmethod
    def delete(self, identifier: str, instance: str) -> None:
        ...


class InMemoryCartGateway(CartGateway):
    """Process-local stored carts."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], StoredCartRecord] = {}

    def exists(self, identifier: str, instance: str) -> bool:
        return (identifier, instance) in self._records

    def insert(self, record: StoredCartRecord) -> None:
        self._records[(record.identifier, record.instance)] = record

    def first(self, identifier: str, instance: str) -> Optional[StoredCartRecord]:
        return self._records.get((identifier, instance))

    def delete(self, identifier: str, instance: str) -> None:
        self._records.pop((identifier, instance), None)

    def count(self) -> int:
        return len(self._records)


class SupabaseCartGateway(CartGateway):
    """Stored carts in a Supabase (PostgREST) table.

    Expected columns: identifier, instance, content, created_at, updated_at.
    A unique index on (identifier, instance) gives strict exactly-once stores;
    the cart itself only checks ``exists`` before inserting.
    """

    def __init__(self, client=None, table: str = "shoppingcart") -> None:
        self._client = client
        self.table_name = table

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _table(self):
        return self.client.table(self.table_name)

    def exists(self, identifier: str, instance: str) -> bool:
        try:
            result = (
                self._table()
                .select("identifier")
                .eq("identifier", identifier)
                .eq("instance", instance)
                .limit(1)
                .execute()
            )
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to check stored cart: {e}")
            raise StorageUnavailableError(str(e)) from e
        return bool(result.data)

    def insert(self, record: StoredCartRecord) -> None:
        try:
            self._table().insert(record.to_row()).execute()
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to insert stored cart: {e}")
            raise StorageUnavailableError(str(e)) from e

    def first(self, identifier: str, instance: str) -> Optional[StoredCartRecord]:
        try:
            result = (
                self._table()
                .select("*")
                .eq("identifier", identifier)
                .eq("instance", instance)
                .limit(1)
                .execute()
            )
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to read stored cart: {e}")
            raise StorageUnavailableError(str(e)) from e
        return StoredCartRecord(**result.data[0]) if result.data else None

    def delete(self, identifier: str, instance: str) -> None:
        try:
            (
                self._table()
                .delete()
                .eq("identifier", identifier)
                .eq("instance", instance)
                .execute()
            )
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to delete stored cart: {e}")
            raise StorageUnavailableError(str(e)) from e
