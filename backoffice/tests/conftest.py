"""
Centralized Test Configuration.
"""

import asyncio

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from unittest.mock import AsyncMock, MagicMock

from backoffice.app.main import app
from backoffice.app.db.session import get_db, Base
from backoffice.app.core.dependencies import get_email_sender
from backoffice.app.core.locking import KeyedLock
from backoffice.app.core.redis_client import get_redis
import backoffice.app.core.redis_client as redis_client_module
from backoffice.app.domain.events import EventDispatcher, event_dispatcher
from backoffice.app.models.client import Client
from backoffice.app.models.order import Order
from backoffice.app.repositories.order_repository import OrderRepository, ClientRepository
from backoffice.app.services.delivery_notifications import DeliveryNotifier
from backoffice.app.services.delivery_service import DeliveryService

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedisLock:
    def __init__(self, locks, name, blocking_timeout=None):
        self._locks = locks
        self.name = name
        self.blocking_timeout = blocking_timeout

    async def acquire(self):
        lock = self._locks.setdefault(self.name, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self):
        self._locks[self.name].release()


class MockRedis:
    def __init__(self):
        self.store = {}
        self.locks = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    def lock(self, name, timeout=None, blocking_timeout=None):
        return MockRedisLock(self.locks, name, blocking_timeout=blocking_timeout)

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.locks = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the Redis lock backend
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    event_dispatcher.clear_handlers()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def email_sender():
    """Stand-in for the SMTP sender; inspect send_email.await_args_list."""
    sender = MagicMock()
    sender.send_email = AsyncMock()
    return sender


@pytest.fixture
async def client(email_sender):
    """Async client for testing."""
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_email_sender, None)


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def customer(db_session):
    """A client with an email address."""
    record = Client(name="Ada Okafor", email="ada@example.com", phone="+2348000000001")
    db_session.add(record)
    await db_session.commit()
    return record


@pytest.fixture
async def customer_without_email(db_session):
    record = Client(name="Walk-in Customer", email=None)
    db_session.add(record)
    await db_session.commit()
    return record


async def make_order(session, client_id: int, order_number: str) -> Order:
    order = Order(order_number=order_number, client_id=client_id, status="confirmed", total_amount=12500.0)
    session.add(order)
    await session.commit()
    return order


@pytest.fixture
def session_factory():
    """For tests that need more than one session on the test database."""
    return TestingSessionLocal


@pytest.fixture
def order_factory(db_session):
    """Create further orders: await order_factory(client_id, order_number)."""
    async def factory(client_id: int, order_number: str) -> Order:
        return await make_order(db_session, client_id, order_number)
    return factory


@pytest.fixture
async def order(db_session, customer):
    return await make_order(db_session, customer.id, "ORD-1001")


@pytest.fixture
async def second_order(db_session, customer):
    return await make_order(db_session, customer.id, "ORD-1002")


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def recorded_events(events):
    """Every event the service under test emits, in order."""
    recorded = []

    async def record(evt):
        recorded.append(evt)

    events.on("*", record)
    return recorded


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def service(db_session, email_sender, events, locks):
    notifier = DeliveryNotifier(
        orders=OrderRepository(db_session),
        clients=ClientRepository(db_session),
        email_sender=email_sender,
    )
    return DeliveryService(db_session, notifier=notifier, events=events, locks=locks)
