import asyncio
import os
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Use test DB
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "storefront_test")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test_key_secret")
os.environ.setdefault("ADMIN_API_KEY", "")


@pytest.fixture(scope="session")
def event_loop() -> Generator:
    loop = asyncio.get_event_loop_policy().new_event_loop()
    yield loop
    loop.close()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    from storefront.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def _mongo_available() -> bool:
    from motor.motor_asyncio import AsyncIOMotorClient
    from storefront.core.config import get_settings
    client = AsyncIOMotorClient(get_settings().mongodb_uri, serverSelectionTimeoutMS=1000)
    try:
        await client.admin.command("ping")
        return True
    except Exception:
        return False
    finally:
        client.close()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Initialised test database with empty collections. Skips without a MongoDB server."""
    if not await _mongo_available():
        pytest.skip("MongoDB not available")
    from storefront.db.init import DOCUMENT_MODELS, init_db
    await init_db()
    for model in DOCUMENT_MODELS:
        await model.get_motor_collection().delete_many({})
    yield
