import time

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core import security
from app.core.cache import query_cache
from app.core.database import AsyncSessionLocal, Base, get_db
from app.core.security import create_access_token
from app.main import app
from app.models import planning, transaction  # noqa: F401
from app.models.user import User
from app.schemas.user import CurrentUser
from app.services.auth import auth_watchers
from app.services.conversation import client_storage, conversation_store


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_state():
    query_cache.clear()
    query_cache.clock = time.monotonic
    security._revoked_tokens.clear()
    auth_watchers._watchers.clear()
    yield
    query_cache.clear()
    query_cache.clock = time.monotonic
    query_cache.session_factory = AsyncSessionLocal
    client_storage._data.clear()
    conversation_store._contexts.clear()


@pytest.fixture
def clock():
    fake = FakeClock()
    query_cache.clock = fake
    return fake


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    query_cache.session_factory = factory
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db, user_id: str, email: str, full_name: str, phone: str | None = None) -> CurrentUser:
    db.add(User(id=user_id, email=email, full_name=full_name, phone=phone))
    await db.commit()
    return CurrentUser(id=user_id, email=email, full_name=full_name)


@pytest.fixture
async def user(db):
    return await _make_user(db, "11111111-1111-4111-8111-111111111111", "ana@example.com", "Ana Souza", "5511999990000")


@pytest.fixture
async def other_user(db):
    return await _make_user(db, "22222222-2222-4222-8222-222222222222", "bruno@example.com", "Bruno Lima")


@pytest.fixture
def token(user):
    return create_access_token(user.id, user.email, user.full_name)


@pytest.fixture
def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
