"""Data access for articles, domains, authors and parser settings."""

from datetime import UTC, datetime

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptowire.models import RunResult
from cryptowire.store.database import Database, DBArticle, DBDomain, DBParserSettings, DBUser
from cryptowire.store.settings import RUN_HISTORY_LIMIT, ParserConfig, ParserStats
from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1


class DuplicateArticleError(Exception):
    """Raised when saving an article whose slug is already taken."""

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"article slug already exists: {slug}")


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class ArticleStore:
    """Reads and writes published articles."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def find_duplicate(self, title: str, slug: str, source_url: str) -> DBArticle | None:
        """Return any article matching the title, the slug or the source URL."""
        async with self._db.async_session() as session:
            stmt = (
                select(DBArticle)
                .where(
                    or_(
                        DBArticle.title == title,
                        DBArticle.slug == slug,
                        DBArticle.source_url == source_url,
                    )
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def save(self, article: DBArticle) -> DBArticle:
        """Insert a new article.

        Raises:
            DuplicateArticleError: If the slug unique constraint rejects the row.
        """
        async with self._db.async_session() as session:
            session.add(article)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.info("Slug collision on save", slug=article.slug)
                raise DuplicateArticleError(article.slug) from e
            await session.refresh(article)
        logger.info("Article saved", article_id=article.id, slug=article.slug)
        return article

    async def count_by_status(self) -> dict[str, int]:
        async with self._db.async_session() as session:
            result = await session.execute(
                select(DBArticle.status, func.count(DBArticle.id)).group_by(DBArticle.status)
            )
            return {status: count for status, count in result.all()}


class DirectoryStore:
    """Lookups for publishing domains and authors."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def list_active_domains(self, ids: list[int]) -> list[DBDomain]:
        """Active domains among ids, in the order the ids were given."""
        if not ids:
            return []
        async with self._db.async_session() as session:
            result = await session.execute(
                select(DBDomain).where(DBDomain.id.in_(ids), DBDomain.is_active.is_(True))
            )
            by_id = {d.id: d for d in result.scalars()}
        return [by_id[i] for i in ids if i in by_id]

    async def get_user_by_id(self, user_id: int) -> DBUser | None:
        async with self._db.async_session() as session:
            return await session.get(DBUser, user_id)


class SettingsStore:
    """The singleton parser settings row: configuration, counters and history."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def _row(self, session: AsyncSession) -> DBParserSettings:
        row = await session.get(DBParserSettings, SETTINGS_ROW_ID)
        if row is None:
            row = DBParserSettings(
                id=SETTINGS_ROW_ID,
                config_json=ParserConfig().model_dump(mode="json"),
                run_history_json=[],
            )
            session.add(row)
            await session.flush()
        return row

    async def load_config(self) -> ParserConfig:
        async with self._db.async_session() as session:
            async with session.begin():
                row = await self._row(session)
                return ParserConfig.model_validate(row.config_json or {})

    async def save_config(self, config: ParserConfig) -> None:
        async with self._db.async_session() as session:
            async with session.begin():
                row = await self._row(session)
                row.config_json = config.model_dump(mode="json")
        logger.info(
            "Parser configuration saved", enabled=config.enabled, schedule=config.schedule.value
        )

    async def load_stats(self) -> ParserStats:
        async with self._db.async_session() as session:
            async with session.begin():
                row = await self._row(session)
                return self._stats(row)

    async def record_run(self, result: RunResult) -> ParserStats:
        """Fold a finished run into the counters and the capped history.

        Counters and history are updated in one transaction so readers never
        see one without the other.
        """
        async with self._db.async_session() as session:
            async with session.begin():
                row = await self._row(session)
                row.total_parsed = (row.total_parsed or 0) + result.found
                row.total_success = (row.total_success or 0) + result.succeeded
                row.total_failed = (row.total_failed or 0) + result.failed
                row.total_duplicates = (row.total_duplicates or 0) + result.duplicates
                row.last_run_at = result.end_time or datetime.now(UTC)
                history = [result.to_dict(), *(row.run_history_json or [])]
                row.run_history_json = history[:RUN_HISTORY_LIMIT]
                stats = self._stats(row)

        logger.info(
            "Run recorded",
            status=result.status.value,
            total_success=stats.total_success,
            history=len(stats.run_history),
        )
        return stats

    async def set_next_run(self, next_run_at: datetime | None) -> None:
        async with self._db.async_session() as session:
            async with session.begin():
                row = await self._row(session)
                row.next_run_at = next_run_at

    @staticmethod
    def _stats(row: DBParserSettings) -> ParserStats:
        return ParserStats(
            total_parsed=row.total_parsed or 0,
            total_success=row.total_success or 0,
            total_failed=row.total_failed or 0,
            total_duplicates=row.total_duplicates or 0,
            last_run_at=_aware(row.last_run_at),
            next_run_at=_aware(row.next_run_at),
            run_history=list(row.run_history_json or []),
        )
