"""Shared data models for the cryptowire pipeline."""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum


class SourceMode(str, Enum):
    """How candidates are discovered for a source."""

    FEED = "feed"
    PAGE = "page"


class QualityFlag(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"


class RejectReason(str, Enum):
    """Why a candidate did not become an article."""

    DUPLICATE = "duplicate"
    TOO_SHORT = "too_short"
    DEGRADED_QUALITY = "degraded_quality"
    PARSE_ERROR = "parse_error"
    BLOCKED = "blocked"


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(frozen=True)
class Source:
    """A registered content source."""

    name: str
    fetch_url: str
    base_url: str
    weight: int = 1
    mode: SourceMode = SourceMode.FEED


@dataclass
class ArticleCandidate:
    """An article discovered by a feed or listing page but not yet extracted."""

    title: str
    slug: str
    source_url: str
    source_name: str
    source_weight: int
    published_at: datetime
    excerpt: str = ""
    tags: list[str] = field(default_factory=list)
    mode: SourceMode = SourceMode.FEED
    home_url: str = ""


@dataclass
class ImageRef:
    """An image found on an article page."""

    url: str
    alt: str = ""


@dataclass
class ExtractedContent:
    """Final article body and media produced for one candidate."""

    html_body: str
    plain_text_length: int
    quality_flag: QualityFlag = QualityFlag.OK
    title: str | None = None
    excerpt: str = ""
    published_at: datetime | None = None
    featured_image: ImageRef | None = None
    gallery_images: list[ImageRef] = field(default_factory=list)
    extracted_tags: list[str] = field(default_factory=list)

    @property
    def featured_image_url(self) -> str | None:
        return self.featured_image.url if self.featured_image else None


@dataclass
class RunResult:
    """Statistics for one ingestion run."""

    target_count: int
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    found: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)
    status: RunStatus = RunStatus.RUNNING
    trigger: str = "manual"

    def finish(self, status: RunStatus | None = None) -> None:
        """Stamp the end time and settle the status from the counters."""
        self.end_time = datetime.now(UTC)
        if status is not None:
            self.status = status
        elif self.succeeded >= self.target_count:
            self.status = RunStatus.SUCCESS
        elif self.succeeded > 0:
            self.status = RunStatus.PARTIAL
        else:
            self.status = RunStatus.FAILED

    def to_dict(self) -> dict:
        """JSON-compatible form used for run history."""
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        data["status"] = self.status.value
        return data
