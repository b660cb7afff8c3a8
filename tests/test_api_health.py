"""
Tests for src/api/health.py - health check endpoints (liveness, readiness, deep).
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

from src.api.health import (
    deep_health_check,
    health_check,
    readiness_check,
)


class TestHealthCheck:
    async def test_returns_healthy(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None


class TestReadinessCheck:
    async def test_all_healthy_returns_ready(self, mock_redis):
        mock_db = AsyncMock()
        result = await readiness_check(db=mock_db)

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True}

    async def test_db_failure_returns_degraded(self, mock_redis):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))

        result = await readiness_check(db=mock_db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False

    async def test_redis_failure_returns_degraded(self):
        with patch("src.api.health.get_redis", AsyncMock(side_effect=ConnectionError("Redis down"))):
            result = await readiness_check(db=AsyncMock())

        assert result["status"] == "degraded"
        assert result["checks"]["redis"] is False

    async def test_endpoint(self, client, mock_redis):
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] is True


class TestDeepHealthCheck:
    async def test_missing_stripe_config_degrades(self, mock_redis, settings_factory):
        settings = settings_factory(stripe_webhook_secret="")
        with patch("src.api.health.get_settings", return_value=settings):
            result = await deep_health_check(db=AsyncMock())

        assert result["status"] == "degraded"
        assert result["checks"]["stripe"] == {"healthy": False, "missing": ["stripe_webhook_secret"]}

    async def test_database_down_is_unhealthy(self, mock_redis, mock_settings):
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(side_effect=Exception("connection refused"))
        with patch("src.api.health.get_settings", return_value=mock_settings):
            result = await deep_health_check(db=mock_db)

        assert result["status"] == "unhealthy"

    async def test_all_healthy(self, mock_redis, mock_settings):
        mock_redis.get = AsyncMock(return_value="2026-10-19T12:00:00+00:00")
        with patch("src.api.health.get_settings", return_value=mock_settings):
            result = await deep_health_check(db=AsyncMock())

        assert result["status"] == "healthy"
        assert result["checks"]["ai_service"]["last_success"] == "2026-10-19T12:00:00+00:00"
