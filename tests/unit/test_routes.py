"""Unit tests for the API routes."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi import FastAPI

from cryptowire.api.routes import router
from cryptowire.models import RunResult
from cryptowire.services.orchestrator import ConfigError
from cryptowire.services.scheduler import RunInProgressError
from cryptowire.store.settings import ParserConfig, ParserStats


def _result(**kwargs: object) -> RunResult:
    result = RunResult(target_count=5, **kwargs)
    result.finish()
    return result


@pytest.fixture
def scheduler() -> MagicMock:
    return MagicMock()


@pytest.fixture
def settings_store() -> MagicMock:
    store = MagicMock()
    store.load_stats = AsyncMock(return_value=ParserStats())
    return store


@pytest.fixture
async def client(
    scheduler: MagicMock, settings_store: MagicMock
) -> AsyncIterator[httpx.AsyncClient]:
    app = FastAPI()
    app.include_router(router)
    app.state.scheduler = scheduler
    app.state.settings_store = settings_store
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestHealth:
    """Tests for the health endpoint."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        """Should report healthy."""
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestRun:
    """Tests for POST /parser/run."""

    async def test_run_returns_result(
        self, client: httpx.AsyncClient, scheduler: MagicMock
    ) -> None:
        """Should run once with the body options and return the counters."""
        scheduler.run_once = AsyncMock(return_value=_result(found=7, processed=5, succeeded=5))

        response = await client.post(
            "/api/v1/parser/run", json={"count": 5, "use_feed_mode": False}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["succeeded"] == 5
        scheduler.run_once.assert_awaited_once_with(count=5, use_feed_mode=False)

    async def test_run_without_body(self, client: httpx.AsyncClient, scheduler: MagicMock) -> None:
        """Should fall back to the configured defaults."""
        scheduler.run_once = AsyncMock(return_value=_result())

        response = await client.post("/api/v1/parser/run")

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        scheduler.run_once.assert_awaited_once_with(count=None, use_feed_mode=None)

    async def test_run_in_progress(self, client: httpx.AsyncClient, scheduler: MagicMock) -> None:
        """Should answer 409 while another run is active."""
        scheduler.run_once = AsyncMock(side_effect=RunInProgressError("busy"))

        response = await client.post("/api/v1/parser/run")

        assert response.status_code == 409

    async def test_config_error_returns_failed_result(
        self, client: httpx.AsyncClient, scheduler: MagicMock
    ) -> None:
        """Should return the recorded failed run for configuration errors."""
        result = _result(errors=["config_error: no active target domains configured"])
        scheduler.run_once = AsyncMock(side_effect=ConfigError("no domains", result=result))

        response = await client.post("/api/v1/parser/run")

        assert response.status_code == 200
        assert response.json()["errors"] == ["config_error: no active target domains configured"]

    async def test_invalid_count(self, client: httpx.AsyncClient) -> None:
        """Should validate the requested count."""
        response = await client.post("/api/v1/parser/run", json={"count": 500})
        assert response.status_code == 422


class TestStatusAndHistory:
    """Tests for the read-only endpoints."""

    async def test_status(self, client: httpx.AsyncClient, scheduler: MagicMock) -> None:
        """Should expose enablement, schedule and totals."""
        scheduler.get_status = AsyncMock(
            return_value={
                "enabled": True,
                "is_running": False,
                "schedule": "1h",
                "articles_per_run": 5,
                "next_run_at": datetime(2025, 1, 6, 9, 0, tzinfo=UTC),
                "last_run_at": None,
                "stats": {
                    "total_parsed": 10,
                    "total_success": 4,
                    "total_failed": 3,
                    "total_duplicates": 3,
                },
            }
        )

        response = await client.get("/api/v1/parser/status")

        assert response.status_code == 200
        body = response.json()
        assert body["schedule"] == "1h"
        assert body["stats"]["total_success"] == 4

    async def test_history_pages(
        self, client: httpx.AsyncClient, settings_store: MagicMock
    ) -> None:
        """Should slice the stored history by page and limit."""
        runs = [_result(found=i).to_dict() for i in range(12)]
        settings_store.load_stats = AsyncMock(return_value=ParserStats(run_history=runs))

        response = await client.get("/api/v1/parser/history", params={"page": 2, "limit": 5})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 12
        assert [r["found"] for r in body["runs"]] == [5, 6, 7, 8, 9]

    async def test_history_limit_bounds(self, client: httpx.AsyncClient) -> None:
        """Should reject limits above the history size."""
        response = await client.get("/api/v1/parser/history", params={"limit": 51})
        assert response.status_code == 422


class TestToggle:
    """Tests for POST /parser/toggle."""

    async def test_toggle(
        self, client: httpx.AsyncClient, scheduler: MagicMock, settings_store: MagicMock
    ) -> None:
        """Should switch enablement and report the next fire time."""
        next_run = datetime(2025, 1, 6, 12, 0, tzinfo=UTC)
        scheduler.set_enabled = AsyncMock(return_value=ParserConfig(enabled=True))
        settings_store.load_stats = AsyncMock(return_value=ParserStats(next_run_at=next_run))

        response = await client.post("/api/v1/parser/toggle", params={"enabled": "true"})

        assert response.status_code == 200
        assert response.json()["enabled"] is True
        scheduler.set_enabled.assert_awaited_once_with(True)
