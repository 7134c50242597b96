"""
Unit tests for FastAPI application lifespan management.

Tests verify that startup initializes the database and wires the control
plane, and that shutdown drains it and resets the process-wide instance.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI

pytestmark = pytest.mark.asyncio


@pytest.fixture
def mock_control_plane():
    control_plane = MagicMock()
    control_plane.aclose = AsyncMock()
    return control_plane


class TestLifespanStartup:
    """Test application startup lifespan events."""

    async def test_lifespan_startup_initializes_database(self, mock_control_plane):
        from cerebrin_ai.server.main import lifespan

        with (
            patch("cerebrin_ai.server.main.init_db", new_callable=AsyncMock) as mock_init_db,
            patch("cerebrin_ai.server.main.get_control_plane", return_value=mock_control_plane) as mock_get,
        ):
            async with lifespan(FastAPI()):
                mock_init_db.assert_called_once()
                mock_get.assert_called_once()

    async def test_lifespan_startup_logs_success(self, mock_control_plane):
        from cerebrin_ai.server.main import lifespan

        with (
            patch("cerebrin_ai.server.main.init_db", new_callable=AsyncMock),
            patch("cerebrin_ai.server.main.get_control_plane", return_value=mock_control_plane),
            patch("cerebrin_ai.server.main.logger") as mock_logger,
        ):
            async with lifespan(FastAPI()):
                pass

            calls = [call[0][0] for call in mock_logger.info.call_args_list]
            assert any("Starting up" in call for call in calls)
            assert any("Database initialized successfully" in call for call in calls)

    async def test_lifespan_startup_handles_init_db_exception(self, mock_control_plane):
        from cerebrin_ai.server.main import lifespan

        with (
            patch("cerebrin_ai.server.main.init_db", new_callable=AsyncMock) as mock_init_db,
            patch("cerebrin_ai.server.main.get_control_plane", return_value=mock_control_plane) as mock_get,
            patch("cerebrin_ai.server.main.logger") as mock_logger,
        ):
            mock_init_db.side_effect = Exception("Database connection failed")

            async with lifespan(FastAPI()):
                pass

            mock_logger.error.assert_called_once()
            assert "Database initialization failed" in mock_logger.error.call_args[0][0]
            mock_get.assert_called_once()


class TestLifespanShutdown:
    """Test application shutdown lifespan events."""

    async def test_lifespan_shutdown_closes_control_plane(self, mock_control_plane):
        from cerebrin_ai.server.main import lifespan

        with (
            patch("cerebrin_ai.server.main.init_db", new_callable=AsyncMock),
            patch("cerebrin_ai.server.main.get_control_plane", return_value=mock_control_plane),
            patch("cerebrin_ai.server.main.set_control_plane") as mock_set,
            patch("cerebrin_ai.server.main.logger") as mock_logger,
        ):
            async with lifespan(FastAPI()):
                mock_control_plane.aclose.assert_not_called()

            mock_control_plane.aclose.assert_awaited_once()
            mock_set.assert_called_once_with(None)
            shutdown_logs = [c[0][0] for c in mock_logger.info.call_args_list if "Shutting down" in c[0][0]]
            assert len(shutdown_logs) == 1
