"""
Supabase client for snapshot store operations.

Every write is an upsert on the entity's natural key (or a plain insert for
the append-only event log), so repeating a poll is harmless.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client

from config import Config
from database.errors import SnapshotStoreError
from live.models import (
    FixtureEvent,
    WindowStatus,
    fixture_row,
    live_stat_row,
    raw_stat_rows,
)

logger = logging.getLogger(__name__)

# Rows per PostgREST request; bootstrap has ~700 players
UPSERT_BATCH_SIZE = 500
SELECT_PAGE_SIZE = 1000

FIXTURE_STAT_VALUES_CONFLICT = "fixture_id,stat_identifier,side,player_id"


def _chunks(rows: List[Dict[str, Any]], size: int) -> Iterator[List[Dict[str, Any]]]:
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


class SupabaseClient:
    """Client for interacting with Supabase database."""

    def __init__(self, config: Config):
        self.config = config
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Use service key if available for admin operations, otherwise use anon key
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(
            self.config.supabase_url,
            key
        )

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    def _execute(self, operation: str, query):
        """Run a PostgREST query, surfacing failures as SnapshotStoreError."""
        try:
            return query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.error("Snapshot store operation failed", extra={
                "operation": operation,
                "error": str(e),
                "error_type": type(e).__name__,
            })
            raise SnapshotStoreError(operation, str(e)) from e

    def _upsert(self, table: str, rows: List[Dict[str, Any]], on_conflict: str) -> int:
        """Upsert rows in batches. Returns number of rows written."""
        if not rows:
            return 0
        for batch in _chunks(rows, UPSERT_BATCH_SIZE):
            self._execute(
                f"upsert {table}",
                self.client.table(table).upsert(batch, on_conflict=on_conflict),
            )
        return len(rows)

    def _select_all(self, operation: str, build_query) -> List[Dict[str, Any]]:
        """Page through a select; PostgREST caps each response at 1000 rows."""
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            result = self._execute(operation, build_query().range(start, start + SELECT_PAGE_SIZE - 1))
            page = result.data or []
            rows.extend(page)
            if len(page) < SELECT_PAGE_SIZE:
                return rows
            start += SELECT_PAGE_SIZE

    # Reference data (bootstrap)

    def upsert_teams(self, teams: List[Dict[str, Any]]) -> int:
        """
        Upsert teams.

        Args:
            teams: Team rows with team_id, team_name, short_name, code
        """
        return self._upsert("teams", teams, "team_id")

    def upsert_players(self, players: List[Dict[str, Any]]) -> int:
        """
        Upsert players.

        Args:
            players: Player rows keyed by fpl_player_id
        """
        return self._upsert("players", players, "fpl_player_id")

    def upsert_gameweeks(self, gameweeks: List[Dict[str, Any]]) -> int:
        """Upsert descriptive gameweek columns (name, deadline, is_current...)."""
        return self._upsert("gameweeks", gameweeks, "id")

    # Live snapshots

    def upsert_fixtures(self, fixtures: List[Dict[str, Any]]) -> int:
        """
        Upsert fixtures from raw FPL fixture dicts (last write wins).

        Args:
            fixtures: FPL fixtures as returned by /fixtures/
        """
        return self._upsert("fixtures", [fixture_row(f) for f in fixtures], "fpl_fixture_id")

    def upsert_live_player_stats(self, gameweek: int, elements: List[Dict[str, Any]]) -> int:
        """
        Overwrite live player stat snapshots for a gameweek.

        Args:
            gameweek: Gameweek number
            elements: event-live elements (id + cumulative stats)
        """
        rows = [live_stat_row(gameweek, e) for e in elements]
        return self._upsert("live_player_stats", rows, "gameweek,player_id")

    def upsert_raw_fixture_stats(self, fixtures: List[Dict[str, Any]]) -> int:
        """Overwrite cumulative per-player fixture stat values."""
        rows: List[Dict[str, Any]] = []
        for fixture in fixtures:
            rows.extend(raw_stat_rows(fixture))
        return self._upsert("fixture_stat_values", rows, FIXTURE_STAT_VALUES_CONFLICT)

    def append_events(self, events: List[FixtureEvent]) -> int:
        """
        Insert events into the append-only log.

        The delta engine never produces the same event twice, so this is a
        plain insert with no conflict handling. One request per call: a
        partially committed cycle would be re-emitted after the engine rolls
        back.
        """
        if not events:
            return 0
        rows = [e.to_row() for e in events]
        self._execute("insert fixture_events", self.client.table("fixture_events").insert(rows))
        return len(rows)

    def set_window_status(self, gameweek: int, bonus_added: bool, data_checked: bool) -> WindowStatus:
        """
        Upsert gameweek completion flags; finished is derived from both.
        """
        status = WindowStatus(gameweek=gameweek, bonus_added=bonus_added, data_checked=data_checked)
        self._execute(
            "upsert gameweeks",
            self.client.table("gameweeks").upsert(status.to_row(), on_conflict="id"),
        )
        return status

    # Reads

    def get_fixtures_for_window(self, gameweek: int) -> List[Dict[str, Any]]:
        result = self._execute(
            "select fixtures",
            self.client.table("fixtures").select("*").eq("gameweek", gameweek).order("fpl_fixture_id"),
        )
        return result.data or []

    def get_window_status(self, gameweek: int) -> Optional[WindowStatus]:
        result = self._execute(
            "select gameweeks",
            self.client.table("gameweeks").select("id, bonus_added, data_checked, finished")
            .eq("id", gameweek).limit(1),
        )
        rows = result.data or []
        # Rows created by bootstrap sync carry no completion flags yet
        if not rows or rows[0].get("bonus_added") is None:
            return None
        return WindowStatus.from_row(rows[0])

    def get_recent_events(self, gameweek: int, limit: int = 10) -> List[Dict[str, Any]]:
        """
        Get the most recent events of a gameweek, newest first.

        Args:
            gameweek: Gameweek number
            limit: Maximum number of events
        """
        result = self._execute(
            "select fixture_events",
            self.client.table("fixture_events").select("*")
            .eq("gameweek", gameweek)
            .order("occurred_at", desc=True)
            .order("id", desc=True)
            .limit(limit),
        )
        return result.data or []

    def get_live_player_stats(self, gameweek: int) -> List[Dict[str, Any]]:
        return self._select_all(
            "select live_player_stats",
            lambda: self.client.table("live_player_stats").select("*")
            .eq("gameweek", gameweek).order("player_id"),
        )

    def get_raw_fixture_stats(self, gameweek: int) -> List[Dict[str, Any]]:
        """Cumulative fixture stat values of a gameweek (delta engine baseline)."""
        return self._select_all(
            "select fixture_stat_values",
            lambda: self.client.table("fixture_stat_values")
            .select("fixture_id, gameweek, stat_identifier, side, player_id, value")
            .eq("gameweek", gameweek)
            .order("fixture_id")
            .order("stat_identifier")
            .order("side")
            .order("player_id"),
        )
