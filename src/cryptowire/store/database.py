"""SQLAlchemy models and connection management.

Only the columns the pipeline reads or writes are modelled; the wider
publishing schema belongs to the CRUD service sharing this database.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""


class DBDomain(Base):
    """Publishing destination an article is assigned to."""

    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


class DBUser(Base):
    """Author account; the pipeline only reads it."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())


class DBArticle(Base):
    """Published article as written by the pipeline."""

    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100))
    tags: Mapped[list[str] | None] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), default="published")
    quality_flag: Mapped[str] = mapped_column(String(20), default="ok")

    domain_id: Mapped[int] = mapped_column(Integer, ForeignKey("domains.id"), nullable=False)
    author_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    # Media
    featured_image_url: Mapped[str | None] = mapped_column(Text)
    gallery_json: Mapped[list[dict] | None] = mapped_column(JSON)

    # Source metadata
    source_url: Mapped[str | None] = mapped_column(Text)
    source_name: Mapped[str | None] = mapped_column(String(255))
    is_parsed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Counters: shown value is fake + real
    fake_views: Mapped[int] = mapped_column(Integer, default=0)
    fake_likes: Mapped[int] = mapped_column(Integer, default=0)
    real_views: Mapped[int] = mapped_column(Integer, default=0)
    real_likes: Mapped[int] = mapped_column(Integer, default=0)
    total_views: Mapped[int] = mapped_column(Integer, default=0)
    total_likes: Mapped[int] = mapped_column(Integer, default=0)

    published_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_articles_title", "title"),
        Index("ix_articles_source_url", "source_url"),
        Index("ix_articles_status", "status"),
    )


class DBParserSettings(Base):
    """Singleton row holding the parser configuration and run statistics."""

    __tablename__ = "parser_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    config_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    total_parsed: Mapped[int] = mapped_column(Integer, default=0)
    total_success: Mapped[int] = mapped_column(Integer, default=0)
    total_failed: Mapped[int] = mapped_column(Integer, default=0)
    total_duplicates: Mapped[int] = mapped_column(Integer, default=0)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    run_history_json: Mapped[list[dict]] = mapped_column(JSON, default=list)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        self.engine = create_async_engine(database_url, echo=False, **engine_kwargs)
        self.async_session = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
