from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from fintrack.core.database import create_engine_for, get_db, init_db
from fintrack.main import app
from fintrack.models.account import Account
from fintrack.services.provisioning import UserProvisioner


@pytest_asyncio.fixture
async def engine():
    test_engine = create_engine_for("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(db):
    return await UserProvisioner.ensure_user(db, "user-alice", email="alice@example.com")


@pytest_asyncio.fixture
async def other_user(db):
    return await UserProvisioner.ensure_user(db, "user-bob", email="bob@example.com")


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def stored_balance(db, account_id: int) -> Decimal:
    """Balance column as it sits in the store, bypassing the identity map."""
    res = await db.execute(select(Account.balance).where(Account.id == account_id))
    return Decimal(res.scalar_one()).quantize(Decimal("0.01"))


async def account_id_by_name(db, user_id: int, name: str) -> int:
    res = await db.execute(select(Account.id).where(Account.user_id == user_id, Account.name == name))
    return res.scalar_one()
