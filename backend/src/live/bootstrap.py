"""
Bootstrap refresh: reference data shared by every poll session.

Pulls bootstrap-static and upserts teams, players and descriptive gameweek
columns. Poll sessions never write these tables.
"""

import logging
from typing import Any, Dict, Optional

from fpl_api.client import FPLAPIClient
from live.models import gameweek_row, player_row, team_row

logger = logging.getLogger(__name__)


def current_gameweek_from_bootstrap(bootstrap: Dict[str, Any]) -> Optional[int]:
    """The is_current gameweek id, or None between seasons."""
    for event in bootstrap.get("events", []):
        if event.get("is_current"):
            return event["id"]
    return None


class BootstrapRefresher:
    """Handles reference data refresh from bootstrap-static."""

    def __init__(self, fpl_client: FPLAPIClient, store):
        self.fpl_client = fpl_client
        self.store = store

    async def refresh(self) -> Dict[str, Any]:
        """
        Fetch bootstrap-static and upsert teams, players and gameweeks.

        Returns:
            Row counts written plus the current gameweek id
        """
        bootstrap = await self.fpl_client.get_bootstrap_static()

        teams = [team_row(t) for t in bootstrap.get("teams", [])]
        players = [player_row(p) for p in bootstrap.get("elements", [])]
        gameweeks = [gameweek_row(e) for e in bootstrap.get("events", [])]

        self.store.upsert_teams(teams)
        self.store.upsert_players(players)
        self.store.upsert_gameweeks(gameweeks)

        result = {
            "teams": len(teams),
            "players": len(players),
            "gameweeks": len(gameweeks),
            "current_gameweek": current_gameweek_from_bootstrap(bootstrap),
        }
        logger.info("Bootstrap refreshed", extra=result)
        return result
