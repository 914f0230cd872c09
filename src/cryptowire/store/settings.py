"""Schema of the persisted parser configuration and statistics."""

import random
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from cryptowire.services.distribution import DistributionStrategy
from cryptowire.sources import DEFAULT_LISTING_URL

RUN_HISTORY_LIMIT = 50


class ScheduleInterval(str, Enum):
    EVERY_15_MINUTES = "15min"
    EVERY_30_MINUTES = "30min"
    HOURLY = "1h"
    EVERY_2_HOURS = "2h"
    EVERY_4_HOURS = "4h"
    EVERY_8_HOURS = "8h"
    EVERY_12_HOURS = "12h"
    DAILY = "24h"


CRON_EXPRESSIONS: dict[ScheduleInterval, str] = {
    ScheduleInterval.EVERY_15_MINUTES: "*/15 * * * *",
    ScheduleInterval.EVERY_30_MINUTES: "*/30 * * * *",
    ScheduleInterval.HOURLY: "0 * * * *",
    ScheduleInterval.EVERY_2_HOURS: "0 */2 * * *",
    ScheduleInterval.EVERY_4_HOURS: "0 */4 * * *",
    ScheduleInterval.EVERY_8_HOURS: "0 */8 * * *",
    ScheduleInterval.EVERY_12_HOURS: "0 */12 * * *",
    ScheduleInterval.DAILY: "0 0 * * *",
}


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"


class StatRange(BaseModel):
    """Inclusive range initial fake counters are drawn from."""

    min: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)

    def draw(self, rng: random.Random) -> int:
        if self.max <= self.min:
            return self.min
        return rng.randint(self.min, self.max)


class TargetDomain(BaseModel):
    domain_id: int
    name: str = ""
    weight: int = Field(default=1, ge=1, le=10)


class ParserConfig(BaseModel):
    """Operator-tunable parser configuration, read once at the start of each run."""

    enabled: bool = False
    schedule: ScheduleInterval = ScheduleInterval.EVERY_4_HOURS
    articles_per_run: int = Field(default=5, ge=1, le=50)
    request_delay: float = Field(default=2.0, ge=1, le=10, description="Seconds between articles")
    request_timeout: float = Field(default=30.0, ge=10, le=60, description="Request timeout (s)")
    use_feed_mode: bool = True
    listing_url: str = DEFAULT_LISTING_URL

    # Content
    min_content_length: int = Field(default=500, ge=100, le=2000)
    excerpt_length: int = Field(default=200, ge=50, le=500)
    save_images: bool = True
    max_image_size: int = Field(default=5 * 1024 * 1024, ge=1024 * 1024, le=10 * 1024 * 1024)

    # Distribution
    target_domains: list[TargetDomain] = Field(default_factory=list)
    distribution_strategy: DistributionStrategy = DistributionStrategy.ROUND_ROBIN

    # Publishing
    default_author_id: int | None = None
    default_category: str = "Crypto"
    default_tags: list[str] = Field(default_factory=list)
    default_status: ArticleStatus = ArticleStatus.PUBLISHED
    initial_views: StatRange = Field(default_factory=lambda: StatRange(min=50, max=500))
    initial_likes: StatRange = Field(default_factory=lambda: StatRange(min=5, max=50))

    @field_validator("listing_url")
    @classmethod
    def validate_listing_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("listing_url must be an absolute http(s) URL")
        return v

    @model_validator(mode="after")
    def unique_domains(self) -> "ParserConfig":
        ids = [d.domain_id for d in self.target_domains]
        if len(ids) != len(set(ids)):
            raise ValueError("target_domains lists a domain more than once")
        return self

    @property
    def cron_expression(self) -> str:
        return CRON_EXPRESSIONS[self.schedule]

    @property
    def domain_weights(self) -> dict[int, int]:
        return {d.domain_id: d.weight for d in self.target_domains}


class ParserStats(BaseModel):
    """Cumulative counters and the rolling run history, newest first."""

    total_parsed: int = 0
    total_success: int = 0
    total_failed: int = 0
    total_duplicates: int = 0
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    run_history: list[dict] = Field(default_factory=list)
