"""Shared fixtures for unit tests."""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy.pool import StaticPool

from cryptowire.store.database import Database, DBDomain, DBUser


@pytest.fixture
async def database() -> AsyncIterator[Database]:
    """In-memory database shared across sessions of one test."""
    db = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
async def directory(database: Database) -> dict[str, list[int] | int]:
    """Two active domains, one inactive domain and an author."""
    async with database.async_session() as session:
        domains = [
            DBDomain(name="alpha.example"),
            DBDomain(name="beta.example"),
            DBDomain(name="retired.example", is_active=False),
        ]
        author = DBUser(username="editor")
        session.add_all([*domains, author])
        await session.commit()
        return {"domain_ids": [d.id for d in domains], "author_id": author.id}
