"""Tests for the diagnostics scripts under backend/scripts."""

import importlib.util
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import make_element, make_fixture

SCRIPTS_DIR = Path(__file__).resolve().parents[1] / "scripts"


def _load_script(name):
    spec = importlib.util.spec_from_file_location(name, SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def consistency_script():
    return _load_script("check_gameweek_consistency")


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes, consistent", [(30, True), (0, False)])
async def test_consistency_check_closes_http_client(consistency_script, config, store, capsys, minutes, consistent):
    store.upsert_fixtures([make_fixture(1, 5)])
    store.upsert_live_player_stats(5, [make_element(10, minutes=minutes)])
    fpl_client = MagicMock()
    fpl_client.close = AsyncMock()

    with patch.object(consistency_script, "FPLAPIClient", return_value=fpl_client), \
            patch.object(consistency_script, "create_store", return_value=store):
        result = await consistency_script.check(config, 5, 10)

    assert result is consistent
    fpl_client.close.assert_awaited_once()
    assert "GAMEWEEK 5" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_consistency_check_closes_http_client_on_store_error(consistency_script, config):
    broken = MagicMock()
    broken.get_fixtures_for_window.side_effect = RuntimeError("store unreachable")
    fpl_client = MagicMock()
    fpl_client.close = AsyncMock()

    with patch.object(consistency_script, "FPLAPIClient", return_value=fpl_client), \
            patch.object(consistency_script, "create_store", return_value=broken):
        with pytest.raises(RuntimeError):
            await consistency_script.check(config, 5, 10)

    fpl_client.close.assert_awaited_once()
