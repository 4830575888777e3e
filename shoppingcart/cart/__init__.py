"""Cart package: item models, storage, events and the Cart aggregate."""
from .events import CartEvents, EventBus, EventDispatcher, NullEventBus, RedisStreamEventBus
from .models import CartItem, Coupon, CouponState, ItemOptions, generate_row_id
from .service import Cart, create_cart
from .storage import (
    CartGateway,
    InMemoryCartGateway,
    InMemorySessionStore,
    RedisSessionStore,
    SessionKeys,
    SessionStore,
    StoredCartRecord,
    SupabaseCartGateway,
)

__all__ = [
    "Cart",
    "CartEvents",
    "CartGateway",
    "CartItem",
    "Coupon",
    "CouponState",
    "EventBus",
    "EventDispatcher",
    "InMemoryCartGateway",
    "InMemorySessionStore",
    "ItemOptions",
    "NullEventBus",
    "RedisSessionStore",
    "RedisStreamEventBus",
    "SessionKeys",
    "SessionStore",
    "StoredCartRecord",
    "SupabaseCartGateway",
    "create_cart",
    "generate_row_id",
]
