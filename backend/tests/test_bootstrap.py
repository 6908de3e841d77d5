"""Tests for the bootstrap-static reference data refresh."""

import pytest

from live.bootstrap import BootstrapRefresher, current_gameweek_from_bootstrap

BOOTSTRAP = {
    "events": [
        {"id": 1, "name": "Gameweek 1", "deadline_time": "2024-08-16T17:30:00Z", "is_previous": True},
        {"id": 2, "name": "Gameweek 2", "deadline_time": "2024-08-24T10:00:00Z", "is_current": True},
        {"id": 3, "name": "Gameweek 3", "deadline_time": "2024-08-31T10:00:00Z", "is_next": True},
    ],
    "teams": [
        {"id": 1, "name": "Arsenal", "short_name": "ARS", "code": 3},
        {"id": 2, "name": "Aston Villa", "short_name": "AVL", "code": 7},
    ],
    "elements": [
        {"id": 10, "web_name": "Saka", "first_name": "Bukayo", "second_name": "Saka",
         "team": 1, "element_type": 3, "total_points": 25, "now_cost": 100, "status": "a"},
    ],
}


def test_current_gameweek_from_bootstrap():
    assert current_gameweek_from_bootstrap(BOOTSTRAP) == 2
    assert current_gameweek_from_bootstrap({"events": [{"id": 1}]}) is None


@pytest.mark.asyncio
async def test_refresh_upserts_reference_data(fpl_client, store):
    fpl_client.bootstrap = BOOTSTRAP

    result = await BootstrapRefresher(fpl_client, store).refresh()

    assert result == {"teams": 2, "players": 1, "gameweeks": 3, "current_gameweek": 2}
    assert store.teams[1]["short_name"] == "ARS"
    assert store.players[10]["team_id"] == 1
    assert store.players[10]["position"] == 3
    assert store.gameweeks[2]["is_current"] is True


@pytest.mark.asyncio
async def test_refresh_does_not_touch_completion_flags(fpl_client, store):
    store.set_window_status(1, True, True)
    fpl_client.bootstrap = BOOTSTRAP

    await BootstrapRefresher(fpl_client, store).refresh()

    status = store.get_window_status(1)
    assert status.finished is True
    assert store.gameweeks[1]["name"] == "Gameweek 1"
