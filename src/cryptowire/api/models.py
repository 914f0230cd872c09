"""Pydantic models for API requests and responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from cryptowire.models import RunResult


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(description="Health status")
    version: str = Field(description="Application version")


class RunRequest(BaseModel):
    """Options for a manual parser run."""

    count: int | None = Field(default=None, ge=1, le=50, description="Articles to ingest")
    use_feed_mode: bool | None = Field(
        default=None, description="Discover via feeds (true) or listing pages (false)"
    )


class RunResponse(BaseModel):
    """Outcome of one parser run, as recorded in the history."""

    status: str = Field(description="success, partial or failed")
    trigger: str = Field(description="manual or scheduled")
    target_count: int
    found: int = Field(description="Candidates discovered")
    processed: int = Field(description="Candidates examined")
    succeeded: int = Field(description="Articles saved")
    failed: int = Field(description="Candidates rejected or errored")
    duplicates: int = Field(description="Candidates already stored")
    errors: list[str] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime | None = None

    @classmethod
    def from_result(cls, result: RunResult) -> "RunResponse":
        return cls.model_validate(result.to_dict())


class ParserStatsResponse(BaseModel):
    total_parsed: int
    total_success: int
    total_failed: int
    total_duplicates: int


class StatusResponse(BaseModel):
    """Parser status for the admin dashboard."""

    enabled: bool
    is_running: bool
    schedule: str
    articles_per_run: int
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    stats: ParserStatsResponse


class HistoryResponse(BaseModel):
    """A page of the run history, newest first."""

    runs: list[RunResponse]
    page: int
    limit: int
    total: int


class ToggleResponse(BaseModel):
    enabled: bool
    next_run_at: datetime | None = None
