"""Duplicate detection against already-stored articles."""

from cryptowire.models import ArticleCandidate
from cryptowire.store.repositories import ArticleStore
from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)


class Deduplicator:
    """Cheap pre-check run before extraction and again when the title changes.

    The slug unique constraint enforced by ArticleStore.save remains the
    authority; this check only saves extraction work.
    """

    def __init__(self, article_store: ArticleStore) -> None:
        self._articles = article_store

    async def is_duplicate(self, candidate: ArticleCandidate) -> bool:
        existing = await self._articles.find_duplicate(
            title=candidate.title,
            slug=candidate.slug,
            source_url=candidate.source_url,
        )
        if existing is not None:
            logger.info(
                "Duplicate candidate",
                title=candidate.title,
                source=candidate.source_name,
                existing_id=existing.id,
            )
            return True
        return False
