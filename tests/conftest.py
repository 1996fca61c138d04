"""Pytest configuration and fixtures."""
import jwt
import pytest
import pytest_asyncio

from rbac.core import config
from rbac.core.cancellation import CancellationToken
from rbac.core.database.engine import build_engine, build_session_factory, init_db
from rbac.features.permissions.manager import PermissionManager
from rbac.features.permissions.store import PermissionStore
from rbac.features.permissions.validators import PermissionValidator
from tests.fakes import InMemoryPermissionStore


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rbac.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def token():
    return CancellationToken()


@pytest_asyncio.fixture
async def store(session):
    store = PermissionStore(session)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def manager(store):
    manager = PermissionManager(store, [PermissionValidator()])
    yield manager
    await manager.close()


@pytest.fixture
def memory_store():
    return InMemoryPermissionStore()


@pytest.fixture
def memory_manager(memory_store):
    return PermissionManager(memory_store, [PermissionValidator()])


@pytest.fixture
def make_token():
    """Encode a bearer token the way the identity provider would."""

    def _make(*permissions: str, subject: str = "user-1") -> str:
        payload = {"sub": subject, "permissions": list(permissions)}
        return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)

    return _make
