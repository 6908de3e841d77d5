"""
In-process snapshot store.

Same contract as SupabaseClient, backed by dicts keyed on the natural
composite keys. Used for local dry runs (STORE_BACKEND=memory) and tests.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from live.models import (
    FixtureEvent,
    WindowStatus,
    fixture_row,
    live_stat_row,
    raw_stat_rows,
)

logger = logging.getLogger(__name__)


class MemorySnapshotStore:
    """Snapshot store held in memory."""

    def __init__(self):
        self.teams: Dict[int, Dict[str, Any]] = {}
        self.players: Dict[int, Dict[str, Any]] = {}
        self.gameweeks: Dict[int, Dict[str, Any]] = {}
        self.fixtures: Dict[int, Dict[str, Any]] = {}
        self.live_player_stats: Dict[Tuple[int, int], Dict[str, Any]] = {}
        self.fixture_stat_values: Dict[Tuple[int, str, str, int], Dict[str, Any]] = {}
        self.events: List[Dict[str, Any]] = []
        self._next_event_id = 1

    @staticmethod
    def _replace(table: Dict[Any, Dict[str, Any]], key: Any, row: Dict[str, Any]):
        table[key] = copy.deepcopy(row)

    @staticmethod
    def _merge(table: Dict[Any, Dict[str, Any]], key: Any, row: Dict[str, Any]):
        # Upsert semantics for tables written by more than one writer
        merged = dict(table.get(key, {}))
        merged.update(copy.deepcopy(row))
        table[key] = merged

    def upsert_teams(self, teams: List[Dict[str, Any]]) -> int:
        for row in teams:
            self._replace(self.teams, row["team_id"], row)
        return len(teams)

    def upsert_players(self, players: List[Dict[str, Any]]) -> int:
        for row in players:
            self._replace(self.players, row["fpl_player_id"], row)
        return len(players)

    def upsert_gameweeks(self, gameweeks: List[Dict[str, Any]]) -> int:
        for row in gameweeks:
            self._merge(self.gameweeks, row["id"], row)
        return len(gameweeks)

    def upsert_fixtures(self, fixtures: List[Dict[str, Any]]) -> int:
        for fixture in fixtures:
            row = fixture_row(fixture)
            self._replace(self.fixtures, row["fpl_fixture_id"], row)
        return len(fixtures)

    def upsert_live_player_stats(self, gameweek: int, elements: List[Dict[str, Any]]) -> int:
        for element in elements:
            row = live_stat_row(gameweek, element)
            self._replace(self.live_player_stats, (gameweek, row["player_id"]), row)
        return len(elements)

    def upsert_raw_fixture_stats(self, fixtures: List[Dict[str, Any]]) -> int:
        count = 0
        for fixture in fixtures:
            for row in raw_stat_rows(fixture):
                key = (row["fixture_id"], row["stat_identifier"], row["side"], row["player_id"])
                self._replace(self.fixture_stat_values, key, row)
                count += 1
        return count

    def append_events(self, events: List[FixtureEvent]) -> int:
        for event in events:
            row = event.to_row()
            row["id"] = self._next_event_id
            self._next_event_id += 1
            self.events.append(row)
        return len(events)

    def set_window_status(self, gameweek: int, bonus_added: bool, data_checked: bool) -> WindowStatus:
        status = WindowStatus(gameweek=gameweek, bonus_added=bonus_added, data_checked=data_checked)
        self._merge(self.gameweeks, gameweek, status.to_row())
        return status

    def get_fixtures_for_window(self, gameweek: int) -> List[Dict[str, Any]]:
        rows = [f for f in self.fixtures.values() if f.get("gameweek") == gameweek]
        return copy.deepcopy(sorted(rows, key=lambda f: f["fpl_fixture_id"]))

    def get_window_status(self, gameweek: int) -> Optional[WindowStatus]:
        row = self.gameweeks.get(gameweek)
        if row is None or "bonus_added" not in row:
            return None
        return WindowStatus.from_row(row)

    def get_recent_events(self, gameweek: int, limit: int = 10) -> List[Dict[str, Any]]:
        rows = [e for e in self.events if e["gameweek"] == gameweek]
        rows.sort(key=lambda e: (e["occurred_at"], e["id"]), reverse=True)
        return copy.deepcopy(rows[:limit])

    def get_live_player_stats(self, gameweek: int) -> List[Dict[str, Any]]:
        rows = [r for (gw, _), r in self.live_player_stats.items() if gw == gameweek]
        return copy.deepcopy(sorted(rows, key=lambda r: r["player_id"]))

    def get_raw_fixture_stats(self, gameweek: int) -> List[Dict[str, Any]]:
        rows = [r for r in self.fixture_stat_values.values() if r.get("gameweek") == gameweek]
        return copy.deepcopy(rows)

    def dump(self) -> Dict[str, Any]:
        """Deep copy of every table (for comparing store states)."""
        return copy.deepcopy({
            "teams": self.teams,
            "players": self.players,
            "gameweeks": self.gameweeks,
            "fixtures": self.fixtures,
            "live_player_stats": self.live_player_stats,
            "fixture_stat_values": self.fixture_stat_values,
            "events": self.events,
        })
