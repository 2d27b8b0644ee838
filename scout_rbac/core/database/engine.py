"""
Async engine and session factory for the access-control store.

The URL comes from DATABASE_URL; SQLite connections get foreign keys turned
on so grant and assignment cascades behave the same as on PostgreSQL.
"""
from collections.abc import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from scout_rbac.core import config


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """
    Turn on foreign key enforcement for every SQLite connection.

    SQLite ignores ON DELETE CASCADE/RESTRICT unless the pragma is set per connection.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    config.SQLALCHEMY_DATABASE_URL,
    poolclass=NullPool if config.SQLALCHEMY_DATABASE_URL.startswith("sqlite") else None,
    echo=False,
    future=True,
)
enable_sqlite_foreign_keys(engine)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success and rolls back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def register_models() -> None:
    """Import all models so they are registered on Base.metadata."""
    from scout_rbac.features.users.models import User  # noqa: F401
    from scout_rbac.features.organizations.models import Organization  # noqa: F401
    from scout_rbac.features.permissions.models import (  # noqa: F401
        Permission, Role, AuditLog
    )
    from scout_rbac.features.forms.models import FormTemplate, FormPermission  # noqa: F401


async def init_db():
    """Create any missing tables."""
    from scout_rbac.core.database.base import Base

    register_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
