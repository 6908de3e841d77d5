"""Tests for the service's startup of the current gameweek."""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from fpl_api.client import FPLAPIError
from main import FPLLiveSyncService


@pytest.fixture
def service(config):
    service = FPLLiveSyncService(replace(config, live_poll_interval=0.01))
    service.scheduler = MagicMock()
    service.scheduler.start = AsyncMock(return_value="gw5_1")
    return service


@pytest.mark.asyncio
async def test_start_retries_until_polling_begins(service):
    service.scheduler.start.side_effect = [FPLAPIError("down", endpoint="/fixtures/?event=5"), "gw5_1"]

    await service._start_current_gameweek(5)

    assert service.scheduler.start.await_count == 2
    service.scheduler.start.assert_awaited_with(5)


@pytest.mark.asyncio
async def test_unknown_gameweek_is_looked_up_again(service):
    service._refresh_bootstrap = AsyncMock(side_effect=[None, 7])

    await service._start_current_gameweek(None)

    assert service._refresh_bootstrap.await_count == 2
    service.scheduler.start.assert_awaited_once_with(7)


@pytest.mark.asyncio
async def test_shutdown_stops_retrying(service):
    service.scheduler.start.side_effect = FPLAPIError("down")
    service._handle_shutdown(15)

    await service._start_current_gameweek(5)

    service.scheduler.start.assert_not_awaited()


@pytest.mark.asyncio
async def test_bootstrap_failure_yields_no_gameweek(service):
    service.fpl_client = MagicMock()
    service.fpl_client.get_bootstrap_static = AsyncMock(side_effect=FPLAPIError("down", endpoint="/bootstrap-static/"))
    service.store = MagicMock()

    assert await service._refresh_bootstrap() is None
