"""Pytest fixtures: per-test SQLite DB, test client, settings, owner/admin users."""
import pytest
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.main import app
from app.core.config import Settings, get_settings
from app.core.rate_limit import reset_rate_limits
from app.core.security import hash_password
from app.db.models import User
from app.db.session import build_engine, build_session_factory, get_db, init_db
from app.services.feature_flags import ALLOW_REVERSE_SHARES, FeatureFlags


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        token_encryption_key=Fernet.generate_key().decode(),
        clamav_url=None,
        upload_storage_dir=str(tmp_path / "storage"),
        metrics_require_admin=False,
        metrics_secret=None,
    )


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db(engine):
    async with build_session_factory(engine)() as session:
        yield session


@pytest.fixture
async def client(db, test_settings):
    async def get_db_override():
        yield db
    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_settings] = lambda: test_settings
    reset_rate_limits()
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def owner(db: AsyncSession) -> User:
    user = User(
        name="Olivia Owner",
        email="owner@test.com",
        password_hash=hash_password("password123"),
        role="user",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def admin(db: AsyncSession) -> User:
    user = User(
        name="Ada Admin",
        email="admin@test.com",
        password_hash=hash_password("admin123"),
        role="admin",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def reverse_shares_enabled(db: AsyncSession) -> None:
    await FeatureFlags(db).set(ALLOW_REVERSE_SHARES, "true")
    await db.commit()


@pytest.fixture
def login(client: AsyncClient):
    """Log in and return the CSRF token to send as X-CSRF-Token."""
    async def _login(email: str, password: str) -> str:
        r = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.text
        return r.json()["csrf_token"]
    return _login
