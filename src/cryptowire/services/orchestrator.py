"""Ingestion run orchestrator for cryptowire."""

import asyncio
import random
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import UTC, datetime

from cryptowire.clients.crawler import PageCrawler
from cryptowire.clients.feeds import FeedFetcher, collect_candidates, sort_candidates
from cryptowire.clients.http import FetchError, Session
from cryptowire.clients.storage import ImageStorage
from cryptowire.config import Settings
from cryptowire.models import (
    ArticleCandidate,
    ExtractedContent,
    RejectReason,
    RunResult,
    RunStatus,
    Source,
    SourceMode,
)
from cryptowire.services.dedup import Deduplicator
from cryptowire.services.distribution import select_target
from cryptowire.services.extractor import ContentExtractor, ExtractionRejected
from cryptowire.sources import load_sources, sources_for_mode
from cryptowire.store.database import DBArticle, DBDomain, DBUser
from cryptowire.store.repositories import (
    ArticleStore,
    DirectoryStore,
    DuplicateArticleError,
    SettingsStore,
)
from cryptowire.store.settings import ParserConfig, ParserStats
from cryptowire.utils.logging import bind_run_context, clear_run_context, get_logger
from cryptowire.utils.text import merge_tags, slugify

logger = get_logger(__name__)

MIN_BATCH_SIZE = 15
MAX_BATCH_SIZE = 50
MAX_ITERATIONS = 5
ZERO_YIELD_STEP = 10
LOW_YIELD_STEP = 15
LOW_SUCCESS_RATE = 0.3
ITERATION_PAUSE = 2.0

Sleep = Callable[[float], Awaitable[None]]


class ConfigError(Exception):
    """Raised when the run cannot start: no target domain or no default author."""

    def __init__(self, message: str, result: RunResult | None = None) -> None:
        self.result = result
        super().__init__(message)


class FeedCandidateProvider:
    """Fetches every feed once, then hands out the sorted list in slices."""

    def __init__(self, fetcher: FeedFetcher, sources: list[Source]) -> None:
        self._fetcher = fetcher
        self._sources = sources
        self._candidates: list[ArticleCandidate] | None = None
        self._cursor = 0
        self.errors: list[str] = []

    @property
    def exhausted(self) -> bool:
        return self._candidates is not None and self._cursor >= len(self._candidates)

    async def next_batch(self, size: int, seen: set[str]) -> list[ArticleCandidate]:
        if self._candidates is None:
            results = await self._fetcher.fetch_all(self._sources)
            self._candidates, self.errors = collect_candidates(results)
            logger.info(
                "Feeds collected",
                sources=len(self._sources),
                candidates=len(self._candidates),
                failed_sources=len(self.errors),
            )

        batch: list[ArticleCandidate] = []
        while self._cursor < len(self._candidates) and len(batch) < size:
            candidate = self._candidates[self._cursor]
            self._cursor += 1
            if candidate.source_url not in seen:
                seen.add(candidate.source_url)
                batch.append(candidate)
        return batch


class CrawlCandidateProvider:
    """Re-crawls the listing sources each batch, asking for more links as the batch grows."""

    exhausted = False

    def __init__(self, crawler: PageCrawler, sources: list[Source]) -> None:
        self._crawler = crawler
        self._sources = sources
        self.errors: list[str] = []

    async def next_batch(self, size: int, seen: set[str]) -> list[ArticleCandidate]:
        found: list[ArticleCandidate] = []
        discovered_at = datetime.now(UTC)
        for source in self._sources:
            found.extend(await self._crawler.discover_links(source, size, discovered_at))

        batch: list[ArticleCandidate] = []
        for candidate in sort_candidates(found):
            if len(batch) >= size:
                break
            if candidate.source_url not in seen:
                seen.add(candidate.source_url)
                batch.append(candidate)
        return batch


CandidateProvider = FeedCandidateProvider | CrawlCandidateProvider


class RunOrchestrator:
    """Drives one ingestion run from discovery to persisted articles."""

    def __init__(
        self,
        settings: Settings,
        settings_store: SettingsStore,
        article_store: ArticleStore,
        directory_store: DirectoryStore,
        image_storage: ImageStorage | None = None,
        sleep: Sleep | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._settings_store = settings_store
        self._articles = article_store
        self._directory = directory_store
        self._storage = image_storage
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._dedup = Deduplicator(article_store)

    async def run(
        self,
        count: int | None = None,
        use_feed_mode: bool | None = None,
        trigger: str = "manual",
    ) -> RunResult:
        """Run the pipeline until count new articles are saved or the search gives up.

        Configuration is read once here; edits made during the run apply to the
        next one. The result is always recorded in the run history, including
        when the run aborts.

        Args:
            count: Target number of new articles. Defaults to articles_per_run.
            use_feed_mode: Discover through feeds (True) or listing pages (False).
                Defaults to the configured mode.
            trigger: Who started the run, "manual" or "scheduled".

        Returns:
            RunResult with the counters, errors and final status.

        Raises:
            ConfigError: If no active target domain or default author is configured.
        """
        bind_run_context(uuid.uuid4().hex[:12], trigger)
        try:
            config = await self._settings_store.load_config()
            target = count or config.articles_per_run
            feed_mode = config.use_feed_mode if use_feed_mode is None else use_feed_mode
            result = RunResult(target_count=target, trigger=trigger)

            logger.info(
                "Starting run",
                target=target,
                mode=SourceMode.FEED.value if feed_mode else SourceMode.PAGE.value,
            )

            try:
                domains, author = await self._resolve_targets(config)
                stats = await self._settings_store.load_stats()
                await self._search(result, config, feed_mode, domains, author, stats)
            except ConfigError as e:
                logger.error("Run aborted by configuration error", error=str(e))
                result.errors.append(f"config_error: {e}")
                result.finish(RunStatus.FAILED)
                await self._settings_store.record_run(result)
                e.result = result
                raise
            except Exception as e:
                logger.error("Run crashed", error=str(e), exc_info=True)
                result.errors.append(f"unexpected error: {e}")
                result.finish(RunStatus.FAILED)
                await self._settings_store.record_run(result)
                raise

            if result.found == 0 and not result.errors:
                result.errors.append("no candidates found")
            result.finish()
            await self._settings_store.record_run(result)

            logger.info(
                "Run finished",
                status=result.status.value,
                found=result.found,
                processed=result.processed,
                succeeded=result.succeeded,
                failed=result.failed,
                duplicates=result.duplicates,
            )
            return result
        finally:
            clear_run_context()

    async def _resolve_targets(self, config: ParserConfig) -> tuple[list[DBDomain], DBUser]:
        domains = await self._directory.list_active_domains(
            [d.domain_id for d in config.target_domains]
        )
        if not domains:
            raise ConfigError("no active target domains configured")
        if config.default_author_id is None:
            raise ConfigError("no default author configured")
        author = await self._directory.get_user_by_id(config.default_author_id)
        if author is None:
            raise ConfigError(f"default author {config.default_author_id} not found")
        return domains, author

    async def _search(
        self,
        result: RunResult,
        config: ParserConfig,
        feed_mode: bool,
        domains: list[DBDomain],
        author: DBUser,
        stats: ParserStats,
    ) -> None:
        """Bounded search loop, widening the batch when yield is poor."""
        sources = load_sources(config.listing_url, self._settings.sources_file)
        mode = SourceMode.FEED if feed_mode else SourceMode.PAGE
        sources = sources_for_mode(sources, mode)
        if not sources:
            result.errors.append(f"no {mode.value} sources registered")
            return

        async with (
            Session(
                timeout=config.request_timeout,
                max_redirects=self._settings.max_redirects,
                sleep=self._sleep,
                rng=self._rng,
            ) as session,
            FeedFetcher(
                timeout=self._settings.feed_timeout,
                max_concurrency=self._settings.feed_concurrency,
                max_redirects=self._settings.max_redirects,
            ) as fetcher,
        ):
            provider = self._provider(feed_mode, session, fetcher, sources)

            extractor = ContentExtractor(
                session,
                min_content_length=config.min_content_length,
                excerpt_length=config.excerpt_length,
                storage=self._storage,
                save_images=config.save_images,
                max_image_size=config.max_image_size,
            )

            batch_size = max(result.target_count * 2, MIN_BATCH_SIZE)
            size_cap = max(MAX_BATCH_SIZE, batch_size)
            seen: set[str] = set()

            for iteration in range(1, MAX_ITERATIONS + 1):
                batch = await provider.next_batch(batch_size, seen)
                result.errors.extend(provider.errors)
                provider.errors = []

                logger.info("Batch ready", iteration=iteration, size=batch_size, found=len(batch))

                if not batch:
                    if provider.exhausted:
                        logger.info("No candidates left", iteration=iteration)
                        break
                    batch_size = min(batch_size + ZERO_YIELD_STEP, size_cap)
                else:
                    result.found += len(batch)
                    for candidate in batch:
                        if result.succeeded >= result.target_count:
                            break
                        await self._process(
                            candidate, result, config, extractor, domains, author, stats
                        )

                if result.succeeded >= result.target_count:
                    break

                if result.processed and result.succeeded / result.processed < LOW_SUCCESS_RATE:
                    batch_size = min(batch_size + LOW_YIELD_STEP, size_cap)
                    logger.info(
                        "Low success rate, widening search",
                        succeeded=result.succeeded,
                        processed=result.processed,
                        batch_size=batch_size,
                    )

                if iteration < MAX_ITERATIONS:
                    await self._sleep(ITERATION_PAUSE)

    async def _process(
        self,
        candidate: ArticleCandidate,
        result: RunResult,
        config: ParserConfig,
        extractor: ContentExtractor,
        domains: list[DBDomain],
        author: DBUser,
        stats: ParserStats,
    ) -> None:
        """Take one candidate from pre-check to saved article, tallying the outcome."""
        result.processed += 1

        if await self._dedup.is_duplicate(candidate):
            result.duplicates += 1
            return

        try:
            content = await extractor.extract(candidate)
        except ExtractionRejected as e:
            self._reject(result, candidate, e.reason.value)
            return
        except FetchError as e:
            self._reject(result, candidate, f"{RejectReason.PARSE_ERROR.value} ({e.reason})")
            return
        except Exception as e:
            logger.warning("Extraction crashed", url=candidate.source_url, error=str(e))
            self._reject(result, candidate, f"{RejectReason.PARSE_ERROR.value} ({e})")
            return
        finally:
            await self._sleep(config.request_delay)

        if content.title and content.title != candidate.title:
            candidate = replace(candidate, title=content.title, slug=slugify(content.title))
            if await self._dedup.is_duplicate(candidate):
                result.duplicates += 1
                return

        await extractor.persist_images(content, candidate.slug, referer=candidate.source_url)

        domain = select_target(
            domains,
            config.distribution_strategy,
            config.domain_weights,
            success_count=stats.total_success + result.succeeded,
            rng=self._rng,
        )

        try:
            saved = await self._articles.save(
                self._build_article(candidate, content, config, domain, author)
            )
        except DuplicateArticleError:
            result.duplicates += 1
            return

        result.succeeded += 1
        logger.info(
            "Article accepted",
            article_id=saved.id,
            title=candidate.title,
            source=candidate.source_name,
            domain=domain.name,
            quality=content.quality_flag.value,
        )

    def _provider(
        self, feed_mode: bool, session: Session, fetcher: FeedFetcher, sources: list[Source]
    ) -> CandidateProvider:
        if feed_mode:
            return FeedCandidateProvider(fetcher, sources)
        crawler = PageCrawler(session, self._settings.listing_delay, sleep=self._sleep)
        return CrawlCandidateProvider(crawler, sources)

    def _reject(self, result: RunResult, candidate: ArticleCandidate, reason: str) -> None:
        result.failed += 1
        result.errors.append(f"{candidate.title}: {reason}")
        logger.info("Candidate rejected", url=candidate.source_url, reason=reason)

    def _build_article(
        self,
        candidate: ArticleCandidate,
        content: ExtractedContent,
        config: ParserConfig,
        domain: DBDomain,
        author: DBUser,
    ) -> DBArticle:
        fake_views = config.initial_views.draw(self._rng)
        fake_likes = config.initial_likes.draw(self._rng)
        return DBArticle(
            title=candidate.title,
            slug=candidate.slug,
            content=content.html_body,
            excerpt=content.excerpt or candidate.excerpt,
            category=config.default_category,
            tags=merge_tags(config.default_tags, candidate.tags, content.extracted_tags),
            status=config.default_status.value,
            quality_flag=content.quality_flag.value,
            domain_id=domain.id,
            author_id=author.id,
            featured_image_url=content.featured_image_url,
            gallery_json=[{"url": i.url, "alt": i.alt} for i in content.gallery_images],
            source_url=candidate.source_url,
            source_name=candidate.source_name,
            is_parsed=True,
            fake_views=fake_views,
            fake_likes=fake_likes,
            real_views=0,
            real_likes=0,
            total_views=fake_views,
            total_likes=fake_likes,
            published_at=(content.published_at or candidate.published_at)
            .astimezone(UTC)
            .replace(tzinfo=None),
        )
