"""
Tests for storage backends, snapshots and event buses
"""

import json
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from shoppingcart.cart import (
    Cart,
    CartEvents,
    CartItem,
    EventDispatcher,
    InMemorySessionStore,
    RedisSessionStore,
    RedisStreamEventBus,
    StoredCartRecord,
    SupabaseCartGateway,
    create_cart,
)
from shoppingcart.cart.serializer import SNAPSHOT_VERSION, dump_content, load_content, loads_content
from shoppingcart.config import CartConfig
from shoppingcart.db import RedisKeys
from shoppingcart.errors import SnapshotFormatError, StorageUnavailableError


def make_record(**overrides):
    values = {
        "identifier": "user-1",
        "instance": "default",
        "content": '{"version": 1, "items": []}',
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 1, 2, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return StoredCartRecord(**values)


class TestSnapshots:
    """Tests for the snapshot format."""

    def test_dump_and_load(self, config):
        """Content survives a snapshot with order and rates."""
        a = CartItem.from_attributes(1, "Widget", 10.0, 1.0, {"size": "L"}).set_tax_rate(21)
        b = CartItem.from_attributes("sku-2", "Gadget", 5.0)
        a.set_quantity(3)
        a.associate("fixtures.BuyableProduct")

        data = dump_content({a.row_id: a, b.row_id: b})
        content = load_content(data, config)

        assert data["version"] == SNAPSHOT_VERSION
        assert list(content) == [a.row_id, b.row_id]
        restored = content[a.row_id]
        assert restored.qty == 3
        assert restored.tax_rate == 21
        assert restored.options == {"size": "L"}
        assert restored.associated_model == "fixtures.BuyableProduct"
        assert restored.config is config

    def test_load_none(self, config):
        """Missing snapshot is empty content."""
        assert load_content(None, config) == {}

    def test_load_json_string(self, config):
        """JSON strings are accepted."""
        raw = json.dumps({"version": 1, "items": [{"id": 1, "name": "Widget", "qty": 2, "price": 10.0}]})
        content = loads_content(raw, config)
        assert content[list(content)[0]].qty == 2

    @pytest.mark.parametrize("data", [
        "not json",
        [],
        {"items": []},
        {"version": 2, "items": []},
        {"version": 1, "items": [{"id": 1}]},
        {"version": 1, "items": [{"id": 1, "name": "Widget", "qty": 1, "price": -1}]},
        {"version": 1, "items": [{"id": 1, "name": "Widget", "qty": 0, "price": 1}]},
    ])
    def test_load_invalid(self, config, data):
        """Malformed snapshots raise SnapshotFormatError."""
        with pytest.raises(SnapshotFormatError) as exc_info:
            load_content(data, config)
        assert exc_info.value.code == "SNAPSHOT_FORMAT"

    def test_load_recomputes_row_id(self, config):
        """A stale stored row id is replaced by the computed one."""
        data = {"version": 1, "items": [
            {"row_id": "stale", "id": 1, "name": "Widget", "qty": 1, "price": 10.0},
        ]}
        content = load_content(data, config)
        assert list(content) == ["027c91341fd5cf4d2579b49c4b6a90da"]


class TestInMemorySessionStore:
    """Tests for the in-memory session store."""

    def test_put_get_remove(self):
        """Basic key operations."""
        store = InMemorySessionStore()
        store.put("cart.default", {"version": 1, "items": []})

        assert store.has("cart.default")
        assert store.get("cart.default") == {"version": 1, "items": []}

        store.remove("cart.default")
        assert not store.has("cart.default")
        assert store.get("cart.default") is None

    def test_values_are_copied(self):
        """Stored values do not share state with the caller."""
        value = {"a": [1]}
        store = InMemorySessionStore({"key": value})
        value["a"].append(2)
        assert store.get("key") == {"a": [1]}


class TestRedisSessionStore:
    """Tests for the Upstash Redis session store."""

    def test_put_and_get(self, mock_redis):
        """Values are JSON-encoded under the session key with a TTL."""
        store = RedisSessionStore("abc", redis=mock_redis, ttl=60)

        store.put("cart.default", {"version": 1, "items": []})

        mock_redis.set.assert_called_once_with(
            "session:abc:cart.default", '{"version": 1, "items": []}', ex=60
        )
        assert store.get("cart.default") == {"version": 1, "items": []}
        assert store.has("cart.default")

    def test_missing_key(self, mock_redis):
        """Missing keys read as None."""
        store = RedisSessionStore("abc", redis=mock_redis)
        assert store.get("cart.default") is None
        assert not store.has("cart.default")

    def test_remove(self, mock_redis):
        """Test removing a key."""
        store = RedisSessionStore("abc", redis=mock_redis)
        store.put("coupons", {"is_ship": True})

        store.remove("coupons")

        mock_redis.delete.assert_called_once_with("session:abc:coupons")
        assert store.get("coupons") is None

    def test_corrupted_value_is_dropped(self, mock_redis):
        """Undecodable data is deleted and read as None."""
        mock_redis.store["session:abc:cart.default"] = "{broken"
        store = RedisSessionStore("abc", redis=mock_redis)

        assert store.get("cart.default") is None
        assert "session:abc:cart.default" not in mock_redis.store

    def test_backend_failure(self, mock_redis):
        """Client errors surface as StorageUnavailableError."""
        mock_redis.get.side_effect = ConnectionError("timeout")
        store = RedisSessionStore("abc", redis=mock_redis)

        with pytest.raises(StorageUnavailableError) as exc_info:
            store.get("cart.default")
        assert exc_info.value.code == "STORAGE_UNAVAILABLE"

    def test_cart_on_redis(self, mock_redis, gateway, config):
        """A cart works end to end on the Redis store."""
        cart = Cart(RedisSessionStore("abc", redis=mock_redis), gateway=gateway, config=config)

        item = cart.add(1, "Widget", 2, 10.0)

        assert cart.get(item.row_id).qty == 2
        assert RedisKeys.session_key("abc", "cart.default") in mock_redis.store


class TestSupabaseCartGateway:
    """Tests for the Supabase stored-cart table."""

    def test_exists_false(self, mock_supabase_client):
        """No rows means not stored."""
        gateway = SupabaseCartGateway(client=mock_supabase_client)

        assert gateway.exists("user-1", "default") is False
        mock_supabase_client.table.assert_called_with("shoppingcart")

    def test_exists_true(self, mock_supabase_client):
        """A matching row means stored."""
        table = mock_supabase_client.table.return_value
        table.execute.return_value = Mock(data=[{"identifier": "user-1"}])
        gateway = SupabaseCartGateway(client=mock_supabase_client)

        assert gateway.exists("user-1", "default") is True
        table.eq.assert_any_call("identifier", "user-1")
        table.eq.assert_any_call("instance", "default")

    def test_first(self, mock_supabase_client):
        """Rows are parsed into records."""
        table = mock_supabase_client.table.return_value
        table.execute.return_value = Mock(data=[make_record().to_row()])
        gateway = SupabaseCartGateway(client=mock_supabase_client, table="carts")

        record = gateway.first("user-1", "default")

        assert record.identifier == "user-1"
        assert record.created_at == datetime(2026, 1, 1, tzinfo=timezone.utc)
        mock_supabase_client.table.assert_called_with("carts")

    def test_first_missing(self, mock_supabase_client):
        """No rows gives None."""
        gateway = SupabaseCartGateway(client=mock_supabase_client)
        assert gateway.first("user-1", "default") is None

    def test_insert(self, mock_supabase_client):
        """Records are inserted as rows."""
        record = make_record()
        gateway = SupabaseCartGateway(client=mock_supabase_client)

        gateway.insert(record)

        table = mock_supabase_client.table.return_value
        table.insert.assert_called_once_with(record.to_row())

    def test_delete(self, mock_supabase_client):
        """Delete filters by identifier and instance."""
        gateway = SupabaseCartGateway(client=mock_supabase_client)

        gateway.delete("user-1", "wishlist")

        table = mock_supabase_client.table.return_value
        table.delete.assert_called_once()
        table.eq.assert_any_call("instance", "wishlist")

    def test_failure(self, mock_supabase_client):
        """Client errors surface as StorageUnavailableError."""
        mock_supabase_client.table.return_value.execute.side_effect = RuntimeError("down")
        gateway = SupabaseCartGateway(client=mock_supabase_client)

        with pytest.raises(StorageUnavailableError):
            gateway.exists("user-1", "default")

    def test_store_through_supabase(self, mock_supabase_client, session, config):
        """Cart.store inserts a row with the snapshot."""
        cart = Cart(session, gateway=SupabaseCartGateway(client=mock_supabase_client), config=config)
        cart.add(1, "Widget", 1, 10.0)

        cart.store("user-1")

        row = mock_supabase_client.table.return_value.insert.call_args[0][0]
        assert row["identifier"] == "user-1"
        assert row["instance"] == "default"
        assert json.loads(row["content"])["items"][0]["name"] == "Widget"


class TestEventBuses:
    """Tests for event dispatching."""

    def test_listener_for_event(self):
        """Listeners receive only their event."""
        dispatcher = EventDispatcher()
        received = []
        dispatcher.listen(CartEvents.ADDED, lambda event, payload: received.append(event))

        dispatcher.dispatch(CartEvents.ADDED)
        dispatcher.dispatch(CartEvents.REMOVED)

        assert received == [CartEvents.ADDED]

    def test_failing_listener_does_not_propagate(self):
        """A broken listener does not stop later listeners."""
        dispatcher = EventDispatcher()
        received = []

        def broken(event, payload):
            raise RuntimeError("listener bug")

        dispatcher.listen(CartEvents.STORED, broken)
        dispatcher.listen("*", lambda event, payload: received.append(event))

        dispatcher.dispatch(CartEvents.STORED)

        assert received == [CartEvents.STORED]

    def test_redis_stream(self):
        """Events are appended to the cart stream."""
        redis = Mock()
        bus = RedisStreamEventBus(redis=redis)
        item = CartItem.from_attributes(1, "Widget", 10.0)

        bus.dispatch(CartEvents.ADDED, item)

        key, entry_id, fields = redis.xadd.call_args[0]
        assert key == RedisKeys.CART_EVENTS
        assert entry_id == "*"
        message = json.loads(fields["data"])
        assert message["event"] == CartEvents.ADDED
        assert message["item"]["row_id"] == item.row_id

    def test_redis_stream_without_payload(self):
        """Cart-level events carry no item."""
        redis = Mock()
        RedisStreamEventBus(redis=redis, stream_key="stream:test").dispatch(CartEvents.STORED)

        key, _, fields = redis.xadd.call_args[0]
        assert key == "stream:test"
        assert json.loads(fields["data"])["item"] is None

    def test_redis_stream_failure_is_swallowed(self):
        """Stream errors never break cart operations."""
        redis = Mock()
        redis.xadd.side_effect = ConnectionError("down")

        RedisStreamEventBus(redis=redis).dispatch(CartEvents.ADDED)


class TestCreateCart:
    """Tests for the hosted cart factory."""

    def test_create_cart(self):
        """Hosted backends are wired from config."""
        cart = create_cart("abc", CartConfig(database_table="carts", session_ttl=60))

        assert isinstance(cart.session, RedisSessionStore)
        assert cart.session.session_id == "abc"
        assert cart.session.ttl == 60
        assert isinstance(cart.events, RedisStreamEventBus)
        assert cart.gateway.table_name == "carts"
