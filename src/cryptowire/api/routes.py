"""API routes for cryptowire."""

from fastapi import APIRouter, HTTPException, Query, Request, status

from cryptowire import __version__
from cryptowire.api.models import (
    HealthResponse,
    HistoryResponse,
    RunRequest,
    RunResponse,
    StatusResponse,
    ToggleResponse,
)
from cryptowire.services.orchestrator import ConfigError
from cryptowire.services.scheduler import RunInProgressError, Scheduler
from cryptowire.store.repositories import SettingsStore
from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["api"])


def _scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def _settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.post("/parser/run", response_model=RunResponse)
async def run_parser(request: Request, body: RunRequest | None = None) -> RunResponse:
    """Run the parser once, right now.

    The request waits for the run to finish and returns its result. A
    configuration error still returns the (failed) result, since it has been
    recorded in the history like any other run.
    """
    body = body or RunRequest()
    logger.info("Manual run requested", count=body.count, use_feed_mode=body.use_feed_mode)

    try:
        result = await _scheduler(request).run_once(
            count=body.count, use_feed_mode=body.use_feed_mode
        )
    except RunInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ConfigError as e:
        if e.result is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
        return RunResponse.from_result(e.result)

    return RunResponse.from_result(result)


@router.get("/parser/status", response_model=StatusResponse)
async def parser_status(request: Request) -> StatusResponse:
    """Enablement, schedule and cumulative statistics."""
    return StatusResponse.model_validate(await _scheduler(request).get_status())


@router.get("/parser/history", response_model=HistoryResponse)
async def parser_history(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
) -> HistoryResponse:
    """Paginated run history, newest first."""
    stats = await _settings_store(request).load_stats()
    start = (page - 1) * limit
    runs = stats.run_history[start : start + limit]
    return HistoryResponse(
        runs=[RunResponse.model_validate(r) for r in runs],
        page=page,
        limit=limit,
        total=len(stats.run_history),
    )


@router.post("/parser/toggle", response_model=ToggleResponse)
async def toggle_parser(
    request: Request,
    enabled: bool | None = Query(default=None, description="Force a state instead of toggling"),
) -> ToggleResponse:
    """Enable or disable scheduled runs."""
    config = await _scheduler(request).set_enabled(enabled)
    stats = await _settings_store(request).load_stats()
    return ToggleResponse(enabled=config.enabled, next_run_at=stats.next_run_at)
