"""Cart lifecycle events.

Publishing is fire-and-forget: a failing listener or stream write is
logged and never breaks the cart operation that emitted the event.
"""

import json
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Callable, Optional

from shoppingcart.db import RedisKeys, get_redis
from shoppingcart.logging import get_logger

if TYPE_CHECKING:
    from .models import CartItem

logger = get_logger(__name__)


class CartEvents:
    """Event names."""

    ADDING = "cart.adding"
    ADDED = "cart.added"
    UPDATING = "cart.updating"
    UPDATED = "cart.updated"
    REMOVING = "cart.removing"
    REMOVED = "cart.removed"
    STORED = "cart.stored"
    RESTORED = "cart.restored"
    ERASED = "cart.erased"
    MERGED = "cart.merged"


class EventBus(ABC):
    """Publishes cart events."""

    @abstractmethod
    def dispatch(self, event: str, payload: Optional["CartItem"] = None) -> None:
        ...


class EventDispatcher(EventBus):
    """In-process dispatcher calling registered listeners synchronously."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[str, Any], None]]] = defaultdict(list)

    def listen(self, event: str, listener: Callable[[str, Any], None]) -> None:
        """Register a listener; ``"*"`` receives every event."""
        self._listeners[event].append(listener)

    def dispatch(self, event: str, payload: Optional["CartItem"] = None) -> None:
        for listener in [*self._listeners.get(event, []), *self._listeners.get("*", [])]:
            try:
                listener(event, payload)
            except Exception as e:
                logger.warning(f"Listener for {event} failed: {e}", exc_info=True)


class NullEventBus(EventBus):
    """Drops every event."""

    def dispatch(self, event: str, payload: Optional["CartItem"] = None) -> None:
        return None


class RedisStreamEventBus(EventBus):
    """Appends cart events to an Upstash Redis stream for realtime consumers.

    Uses Redis Streams (XADD) rather than Pub/Sub for compatibility with the
    Upstash REST API and replay support.
    """

    def __init__(self, redis=None, stream_key: str = RedisKeys.CART_EVENTS) -> None:
        self._redis = redis
        self.stream_key = stream_key

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def dispatch(self, event: str, payload: Optional["CartItem"] = None) -> None:
        try:
            message = {
                "event": event,
                "item": payload.to_dict() if payload is not None else None,
            }
            self.redis.xadd(self.stream_key, "*", {"data": json.dumps(message)})
            logger.debug(f"Emitted {event}")
        except Exception as e:
            logger.warning(f"Failed to emit {event}: {e}", exc_info=True)
