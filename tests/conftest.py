"""
Global pytest configuration and fixtures for the scout RBAC test suite.
"""
import os
from typing import AsyncGenerator, Awaitable, Callable, Iterable, Optional

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only-32-chars")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from scout_rbac.core.database.base import Base
from scout_rbac.core.database.engine import enable_sqlite_foreign_keys, get_db, register_models
from scout_rbac.features.organizations.models import Organization
from scout_rbac.features.permissions.assignments import add_member, set_member_roles
from scout_rbac.features.permissions.bootstrap import provision_organization, seed_permission_catalog
from scout_rbac.features.permissions.cache import role_cache
from scout_rbac.features.permissions.models import Role
from scout_rbac.features.permissions.roles import get_role
from scout_rbac.features.users.auth import create_access_token
from scout_rbac.features.users.models import User
from scout_rbac.main import app


@pytest.fixture(autouse=True)
def reset_role_cache():
    """Every test starts with an empty, enabled snapshot cache."""
    role_cache.enabled = True
    role_cache.clear()
    yield
    role_cache.clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database file per test with foreign keys enforced."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(test_engine)
    register_models()
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db) -> None:
    """Permission catalog seeded."""
    await seed_permission_catalog(db)


@pytest_asyncio.fixture
async def organization(db) -> Organization:
    org = Organization(name="1st Lakeside Scouts")
    db.add(org)
    await db.commit()
    await db.refresh(org)
    return org


@pytest_asyncio.fixture
async def other_organization(db) -> Organization:
    org = Organization(name="2nd Hillcrest Scouts")
    db.add(org)
    await db.commit()
    await db.refresh(org)
    return org


@pytest_asyncio.fixture
async def provisioned_org(db, catalog) -> Organization:
    """Organization with its nine system roles and their default grants, and no form templates."""
    return await provision_organization(db, "3rd Riverside Scouts", form_templates=())


@pytest.fixture
def make_member(db) -> Callable[..., Awaitable[User]]:
    """Factory: create a user, add them to an organization and give them roles."""
    counter = {"n": 0}

    async def _make_member(organization_id: str, role_ids: Iterable[str] = (), name: Optional[str] = None) -> User:
        counter["n"] += 1
        user = User(email=f"member{counter['n']}@example.com", name=name or f"Member {counter['n']}")
        db.add(user)
        await db.commit()
        await db.refresh(user)
        await add_member(db, organization_id, user.id)
        role_ids = list(role_ids)
        if role_ids:
            await set_member_roles(db, organization_id, user.id, role_ids)
        return user

    return _make_member


@pytest.fixture
def role_named(db) -> Callable[[str, str], Awaitable[Role]]:
    """Look up a role of an organization by name."""
    async def _role_named(organization_id: str, role_name: str) -> Role:
        role = await get_role(db, organization_id, role_name)
        assert role is not None, f"role {role_name} missing"
        return role

    return _role_named


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Bearer header for a user."""
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the app with get_db bound to the test database."""
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()
