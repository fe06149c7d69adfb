"""
Test infrastructure for the Article API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after, giving
  each test a clean isolated state without needing transactions or truncation.
- Bearer tokens are minted with PyJWT using the application's SECRET_KEY,
  the same way the external identity provider would.
"""
import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models import Category, Media, Role, User

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


def make_token(user_id: int, secret: str | None = None) -> str:
    return jwt.encode(
        {"id": user_id},
        secret or settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


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


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    Yield a live AsyncSession for tests that need to interact with the
    database directly (e.g. seeding data, asserting ORM state).
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def users() -> dict[str, User]:
    """
    Seed two roles and three users, committed so that API requests (which
    use their own sessions) can see them:

    - ``alice`` and ``bob``: ordinary authenticated users
    - ``erin``: holds the Editor role
    """
    async with async_session_test() as session:
        authenticated = Role(name="Authenticated")
        editor = Role(name=settings.EDITOR_ROLE_NAME)
        session.add_all([authenticated, editor])
        await session.flush()

        seeded = {
            "alice": User(
                username="alice", email="alice@example.com",
                password_hash="pbkdf2$alice", role_id=authenticated.id,
            ),
            "bob": User(
                username="bob", email="bob@example.com",
                password_hash="pbkdf2$bob", role_id=authenticated.id,
            ),
            "erin": User(
                username="erin", email="erin@example.com",
                password_hash="pbkdf2$erin", role_id=editor.id,
            ),
        }
        session.add_all(seeded.values())
        await session.commit()
    return seeded


@pytest_asyncio.fixture
async def category() -> Category:
    async with async_session_test() as session:
        item = Category(name="Engineering", slug="engineering")
        session.add(item)
        await session.commit()
    return item


@pytest_asyncio.fixture
async def cover_image() -> Media:
    async with async_session_test() as session:
        item = Media(
            name="cover.png", url="/uploads/cover.png",
            alternative_text="Cover", width=1200, height=630, mime="image/png",
        )
        session.add(item)
        await session.commit()
    return item


@pytest.fixture
def auth_headers():
    """Return a helper building an Authorization header for a seeded user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user.id)}"}

    return _headers


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
