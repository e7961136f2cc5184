import os

# Must be set before the app modules read their settings
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import create_app
from app.db.session import get_db
from app.models import Base
from app.models.user import User, UserRole
from app.schemas.user_schema import UserCreate
from app.services.auth_service import AuthService
from app.services.storage_backends import OSSBackend, COSBackend, make_s3_client
from app.services.storage_service import StorageService

# Test database URL - in-memory SQLite
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

OSS_BUCKET = "forum-oss"
COS_BUCKET = "forum-cos-1250000000"
TEST_PASSWORD = "Password123!"

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for setting up data and calling services directly"""
    async with session_factory() as session:
        yield session

@pytest.fixture
def storage() -> StorageService:
    """
    Real boto3 clients with fake credentials.

    Presigning is local, so resolve() works offline; tests that upload or
    delete wrap the client in a botocore Stubber.
    """
    oss = OSSBackend(
        make_s3_client("https://oss-cn-hangzhou.aliyuncs.com", "oss-key", "oss-secret", "cn-hangzhou"),
        OSS_BUCKET,
    )
    cos = COSBackend(
        make_s3_client("https://cos.ap-guangzhou.myqcloud.com", "cos-id", "cos-secret", "ap-guangzhou"),
        COS_BUCKET,
    )
    return StorageService([oss, cos], default_scheme="oss", default_expires="1h")

@pytest.fixture
def app(session_factory, storage):
    app = create_app(storage=storage)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override dependency for testing"""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    return app

@pytest.fixture
async def test_client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

@pytest.fixture
def make_user(test_db):
    """Factory creating users straight through AuthService"""
    async def _make_user(username: str, role: UserRole = UserRole.USER) -> User:
        user_data = UserCreate(
            username=username,
            email=f"{username}@example.com",
            password=TEST_PASSWORD,
        )
        return await AuthService(test_db).create_user(user_data, role=role)

    return _make_user

@pytest.fixture
def auth_headers(test_db):
    def _auth_headers(user: User) -> dict:
        token = AuthService(test_db).create_access_token(user)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers

@pytest.fixture
async def test_user(make_user) -> User:
    return await make_user("alice")

@pytest.fixture
async def other_user(make_user) -> User:
    return await make_user("bob")

@pytest.fixture
async def admin_user(make_user) -> User:
    return await make_user("admin", role=UserRole.ADMIN)
