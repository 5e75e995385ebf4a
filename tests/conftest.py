"""
Test Configuration and Fixtures

Provides an in-memory SQLite database, a fake Square API, wired services,
an async test client and authentication helpers.
"""

import os

from cryptography.fernet import Fernet

os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("SQUARE_APP_ID", "sq0idp-test-app")
os.environ.setdefault("SQUARE_APP_SECRET", "sq0csp-test-secret")
os.environ.setdefault("SQUARE_WEBHOOK_SIGNATURE_KEY", "test-webhook-signature-key")
os.environ.setdefault("SQUARE_WEBHOOK_NOTIFICATION_URL", "https://api.example.test/api/square/webhook")

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import Depends  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.config import Settings, get_settings  # noqa: E402
from backend.db.session import get_db  # noqa: E402
from backend.main import app  # noqa: E402
from backend.models.base import Base  # noqa: E402
from backend.models.employee import UserProfile  # noqa: E402
from backend.models.tenant import Tenant  # noqa: E402
from backend.routers.v1.square import get_token_service  # noqa: E402
from backend.services.auth import create_access_token  # noqa: E402
from backend.services.square_tokens import SquareTokenService  # noqa: E402
from integrations.oauth_manager import SquareOAuthClient  # noqa: E402
from integrations.pos.square import SquareClient  # noqa: E402
from tests.factories import FakeSquareAPI, make_tenant, make_user_profile  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean database session for each test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def square_api() -> FakeSquareAPI:
    return FakeSquareAPI()


def build_token_service(
    db: AsyncSession,
    settings: Settings,
    square_api: FakeSquareAPI,
) -> SquareTokenService:
    """Token service whose OAuth and API traffic goes to ``square_api``."""
    transport = square_api.transport()
    oauth_client = SquareOAuthClient(
        client_id=settings.square_app_id,
        client_secret=settings.square_app_secret,
        base_url=settings.square_base_url,
        transport=transport,
    )

    def client_factory(access_token: str) -> SquareClient:
        return SquareClient(
            access_token,
            base_url=settings.square_base_url,
            api_version=settings.square_api_version,
            transport=transport,
        )

    return SquareTokenService(
        db,
        settings=settings,
        oauth_client=oauth_client,
        client_factory=client_factory,
    )


@pytest.fixture
def token_service(db_session: AsyncSession, settings: Settings, square_api: FakeSquareAPI) -> SquareTokenService:
    return build_token_service(db_session, settings, square_api)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    settings: Settings,
    square_api: FakeSquareAPI,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with dependency overrides."""

    async def override_get_db():
        yield db_session

    def override_get_token_service(db: AsyncSession = Depends(get_db)) -> SquareTokenService:
        return build_token_service(db, settings, square_api)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_token_service] = override_get_token_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    """Create a test tenant."""
    tenant = make_tenant(name="Blue Door Coffee")
    db_session.add(tenant)
    await db_session.flush()
    return tenant


@pytest_asyncio.fixture
async def test_owner(db_session: AsyncSession, test_tenant: Tenant) -> UserProfile:
    """Create a test owner profile."""
    owner = make_user_profile(
        test_tenant.id,
        full_name="Maya Chen",
        email="maya@test.com",
        role="owner",
    )
    db_session.add(owner)
    await db_session.flush()
    return owner


@pytest.fixture
def auth_headers(test_owner: UserProfile, test_tenant: Tenant) -> dict[str, str]:
    """Generate JWT auth headers for the test owner."""
    token = create_access_token(
        sub=str(test_owner.id),
        email=test_owner.email,
        tenant_id=str(test_tenant.id),
        role=test_owner.role,
    )
    return {"Authorization": f"Bearer {token}"}
