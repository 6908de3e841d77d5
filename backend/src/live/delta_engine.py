"""
Delta engine: turns cumulative fixture stats into incremental events.

FPL only reports running totals (a player's goals_scored in a fixture is 2,
not "+1"). The engine remembers the last value it saw for every
(fixture, stat, player, side) during one poll session and emits the positive
difference as an event.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from live.models import (
    FIXTURE_STAT_SIDES,
    FixtureEvent,
    StatIdentifier,
    is_active_fixture,
)

logger = logging.getLogger(__name__)

POLICY_IGNORE = "ignore"
POLICY_CORRECT = "correct"


def fixture_key(gameweek: int, fixture_id: int) -> str:
    return f"{gameweek}_{fixture_id}"


def stat_key(identifier: str, player_id: int, side: str) -> str:
    return f"{identifier}_{player_id}_{side}"


class DeltaEngine:
    """Per-session cache of last-seen cumulative values."""

    def __init__(self, negative_delta_policy: str = POLICY_IGNORE):
        if negative_delta_policy not in (POLICY_IGNORE, POLICY_CORRECT):
            raise ValueError(f"Unknown negative delta policy: {negative_delta_policy}")
        self.negative_delta_policy = negative_delta_policy
        self._previous: Dict[str, Dict[str, int]] = {}
        self._unknown_identifiers_seen: set = set()

    def __len__(self) -> int:
        return sum(len(stats) for stats in self._previous.values())

    def seed(self, raw_rows: Iterable[Dict[str, Any]]) -> int:
        """
        Load the baseline from persisted fixture_stat_values rows.

        A session that starts mid-gameweek (e.g. after a restart) would
        otherwise treat every cumulative value as new and re-emit events
        that are already in the log.

        Returns:
            Number of cache entries loaded
        """
        count = 0
        for row in raw_rows:
            key = fixture_key(row["gameweek"], row["fixture_id"])
            stats = self._previous.setdefault(key, {})
            stats[stat_key(row["stat_identifier"], row["player_id"], row["side"])] = int(row["value"])
            count += 1
        return count

    def discard(self):
        """Drop all cached values."""
        self._previous.clear()

    def checkpoint(self) -> Dict[str, Dict[str, int]]:
        """Copy of the cache, for restore() if emitted events could not be stored."""
        return {key: dict(stats) for key, stats in self._previous.items()}

    def restore(self, checkpoint: Dict[str, Dict[str, int]]):
        self._previous = {key: dict(stats) for key, stats in checkpoint.items()}

    def last_value(
        self,
        gameweek: int,
        fixture_id: int,
        identifier: str,
        player_id: int,
        side: str,
    ) -> Optional[int]:
        stats = self._previous.get(fixture_key(gameweek, fixture_id), {})
        return stats.get(stat_key(identifier, player_id, side))

    def process(
        self,
        gameweek: int,
        fixtures: List[Dict[str, Any]],
        occurred_at: str,
        session_id: Optional[str] = None,
    ) -> List[FixtureEvent]:
        """
        Diff active fixtures against the cache and return the new events.

        Only fixtures that have started and not finished are considered.
        Every observed value replaces the cached one, whether or not it
        produced an event.

        Args:
            gameweek: Gameweek being polled
            fixtures: Raw FPL fixture dicts (with stats arrays)
            occurred_at: Observation timestamp stamped on each event
            session_id: Poll session that observed the change

        Returns:
            Events in fixture, stat, side, player order
        """
        events: List[FixtureEvent] = []

        for fixture in fixtures:
            if not is_active_fixture(fixture):
                continue
            fixture_id = fixture["id"]
            previous = self._previous.setdefault(fixture_key(gameweek, fixture_id), {})

            for stat in fixture.get("stats") or []:
                identifier = stat.get("identifier")
                if not identifier:
                    continue
                parsed = StatIdentifier.parse(identifier)
                if not parsed.is_known and identifier not in self._unknown_identifiers_seen:
                    self._unknown_identifiers_seen.add(identifier)
                    logger.debug("Unrecognised stat identifier; passing through", extra={
                        "stat_identifier": identifier,
                        "fixture_id": fixture_id,
                    })

                for side, list_key in FIXTURE_STAT_SIDES:
                    for entry in stat.get(list_key) or []:
                        player_id = entry["element"]
                        current_value = int(entry.get("value") or 0)
                        key = stat_key(identifier, player_id, side.value)
                        previous_value = previous.get(key, 0)
                        delta = current_value - previous_value
                        previous[key] = current_value

                        if delta == 0:
                            continue
                        if delta < 0:
                            logger.warning("Cumulative stat decreased upstream", extra={
                                "gameweek": gameweek,
                                "fixture_id": fixture_id,
                                "stat_identifier": identifier,
                                "player_id": player_id,
                                "side": side.value,
                                "previous_value": previous_value,
                                "current_value": current_value,
                                "policy": self.negative_delta_policy,
                            })
                            if self.negative_delta_policy != POLICY_CORRECT:
                                continue

                        events.append(FixtureEvent(
                            gameweek=gameweek,
                            fixture_id=fixture_id,
                            event_type=identifier,
                            player_id=player_id,
                            delta_value=delta,
                            side=side.value,
                            occurred_at=occurred_at,
                            category=parsed.category,
                            session_id=session_id,
                        ))

        return events
