"""Pytest configuration for backend tests."""
import os
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Keep tests away from real services
os.environ.setdefault("USE_DATABASE", "false")
os.environ.pop("SUPABASE_URL", None)

from rentwatch.database import Base, session_context_factory
import rentwatch.models


@pytest.fixture(scope="session")
def anyio_backend():
    """Specify the async backend for pytest-asyncio."""
    return "asyncio"


@pytest_asyncio.fixture
async def session_context():
    """get_session_context-style factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield session_context_factory(maker)
    await engine.dispose()
