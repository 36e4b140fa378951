"""
Test infrastructure for the Newsroom API.

Strategy
--------
- SQLite in-memory via aiosqlite, so no Postgres instance is needed in CI.
- StaticPool makes every session share the one in-memory connection; a new
  connection would see an empty database.
- ``PRAGMA foreign_keys=ON`` so ``ON DELETE CASCADE / SET NULL`` behave as
  they do on Postgres.
- ``get_db`` and ``get_storage`` are overridden: requests use the test
  session factory and an in-memory object store.
- All tables are created fresh before each test and dropped after.
- ``APP_ENV=test`` switches rate limiting off; tests that exercise it turn
  it back on explicitly.
"""
import itertools
import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-access-secret-with-enough-bytes-for-hs256")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-with-enough-bytes-for-hs256")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from newsroom.database import Base, get_db
from newsroom.main import app
from newsroom.middleware import install_query_counter
from newsroom.models import User, UserRole
from newsroom.ratelimit import limiter
from newsroom.security import hash_password, issue_token_pair
from newsroom.storage import StorageError, StoredObject, build_key, get_storage, public_url

# ---------------------------------------------------------------------------
# Test database engine
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine_test.sync_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---------------------------------------------------------------------------
# In-memory object storage
# ---------------------------------------------------------------------------

class InMemoryStorage:
    """Stands in for ``ObjectStorage``; ``fail_on`` makes the Nth upload fail."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.fail_on: int | None = None
        self.uploads = 0

    async def upload(self, content, original_name, content_type, folder="media"):
        self.uploads += 1
        if self.fail_on is not None and self.uploads >= self.fail_on:
            raise StorageError("Failed to upload file")
        key = build_key(original_name, folder)
        self.objects[key] = content
        return StoredObject(key=key, url=public_url(key), size=len(content), mime_type=content_type)

    async def delete(self, key):
        self.objects.pop(key, None)


memory_storage = InMemoryStorage()

app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_storage] = lambda: memory_storage


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def reset_process_state():
    memory_storage.__init__()
    limiter.reset()
    app.state.metrics.reset()
    yield


@pytest.fixture
def storage() -> InMemoryStorage:
    return memory_storage


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for tests that call services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


_emails = itertools.count(1)


@pytest.fixture
def make_user():
    """
    Factory persisting a user directly and returning ``(user, headers)``.

    ``headers`` carries a valid bearer access token for that user.
    """

    async def _make(role: UserRole = UserRole.AUTHOR, email: str | None = None,
                    password: str = "password123", active: bool = True, name: str | None = None):
        email = email or f"{role.value.lower()}{next(_emails)}@example.com"
        user = User(
            email=email,
            name=name or f"{role.value.title()} User",
            role=role,
            password_hash=hash_password(password),
            is_active=active,
        )
        async with async_session_test() as session:
            session.add(user)
            await session.commit()
        return user, auth_headers(user)

    return _make


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token_pair(user)['access_token']}"}
