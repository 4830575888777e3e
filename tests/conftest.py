"""Pytest configuration and fixtures"""
import os
import pytest
from unittest.mock import Mock

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from shoppingcart.cart import (
    Cart,
    EventDispatcher,
    InMemoryCartGateway,
    InMemorySessionStore,
)
from shoppingcart.config import CartConfig

from fixtures import CATALOG


class EventRecorder:
    """Collects (event, payload) pairs from an EventDispatcher."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    @property
    def names(self):
        return [event for event, _ in self.events]


@pytest.fixture
def session():
    """In-memory session store"""
    return InMemorySessionStore()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def events(recorder):
    """Event dispatcher recording every event"""
    dispatcher = EventDispatcher()
    dispatcher.listen("*", recorder)
    return dispatcher


@pytest.fixture
def gateway():
    """In-memory stored-cart table"""
    return InMemoryCartGateway()


@pytest.fixture
def config():
    return CartConfig(shipping_standard=["NL", "BE"])


@pytest.fixture
def cart(session, events, gateway, config):
    """Cart on in-memory backends"""
    return Cart(session=session, events=events, gateway=gateway, config=config)


@pytest.fixture(autouse=True)
def clean_catalog():
    """Empty the fixture catalog around every test"""
    CATALOG.clear()
    yield
    CATALOG.clear()


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client"""
    client = Mock()

    # Mock table operations
    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute.return_value = Mock(data=[])

    client.table.return_value = table_mock

    return client


@pytest.fixture
def mock_redis():
    """Mock Upstash Redis client backed by a dict"""
    store = {}
    redis = Mock()
    redis.store = store
    redis.get.side_effect = lambda key: store.get(key)
    redis.set.side_effect = lambda key, value, ex=None: store.__setitem__(key, value)
    redis.exists.side_effect = lambda key: 1 if key in store else 0
    redis.delete.side_effect = lambda key: store.pop(key, None) is not None
    return redis
