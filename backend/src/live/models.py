"""
Shared data shapes for the live sync pipeline.

FPL payloads travel through the service as plain dicts; this module holds the
handful of types that carry our own semantics (stat identifiers, events,
gameweek status, session status) and the mappers from FPL payloads to the
rows the snapshot store writes.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Side(str, Enum):
    """Which side of a fixture a player's stat was listed under."""
    HOME = "H"
    AWAY = "A"


# FPL fixture stats list players under "h" and "a"
FIXTURE_STAT_SIDES = ((Side.HOME, "h"), (Side.AWAY, "a"))

OTHER_CATEGORY = "other"

# Stat identifiers with explicit event semantics. Anything FPL adds later
# falls into OTHER_CATEGORY and is still diffed.
KNOWN_STAT_CATEGORIES: Dict[str, str] = {
    "goals_scored": "goal",
    "assists": "assist",
    "own_goals": "own_goal",
    "yellow_cards": "card",
    "red_cards": "card",
    "penalties_saved": "penalty",
    "penalties_missed": "penalty",
    "saves": "save",
    "bonus": "bonus",
    "bps": "bps",
    "defensive_contribution": "defensive",
}

# Cumulative counters kept on the live player stat snapshot
LIVE_STAT_FIELDS = (
    "minutes",
    "goals_scored",
    "assists",
    "clean_sheets",
    "goals_conceded",
    "own_goals",
    "penalties_saved",
    "penalties_missed",
    "yellow_cards",
    "red_cards",
    "saves",
    "bonus",
    "bps",
    "total_points",
)


@dataclass(frozen=True)
class StatIdentifier:
    """An upstream stat identifier plus the category it maps to."""

    name: str
    category: str = OTHER_CATEGORY

    @classmethod
    def parse(cls, name: str) -> "StatIdentifier":
        return cls(name=name, category=KNOWN_STAT_CATEGORIES.get(name, OTHER_CATEGORY))

    @property
    def is_known(self) -> bool:
        return self.category != OTHER_CATEGORY


@dataclass(frozen=True)
class FixtureEvent:
    """
    One observed increase (or, under the correct policy, decrease) of a
    cumulative fixture stat. Immutable once written.
    """

    gameweek: int
    fixture_id: int
    event_type: str
    player_id: int
    delta_value: int
    side: str
    occurred_at: str
    category: str = OTHER_CATEGORY
    session_id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


def derive_finished(bonus_added: bool, data_checked: bool) -> bool:
    """A gameweek is finished only once bonus is added and the data is checked."""
    return bool(bonus_added) and bool(data_checked)


@dataclass
class WindowStatus:
    """Completion flags of one gameweek."""

    gameweek: int
    bonus_added: bool = False
    data_checked: bool = False

    @property
    def finished(self) -> bool:
        return derive_finished(self.bonus_added, self.data_checked)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.gameweek,
            "bonus_added": self.bonus_added,
            "data_checked": self.data_checked,
            "finished": self.finished,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WindowStatus":
        return cls(
            gameweek=row["id"],
            bonus_added=bool(row.get("bonus_added")),
            data_checked=bool(row.get("data_checked")),
        )


@dataclass
class ConsistencyReport:
    """Result of the read-only consistency self-check for a gameweek."""

    gameweek: int
    issues: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gameweek": self.gameweek,
            "consistent": self.consistent,
            "issues": list(self.issues),
        }


@dataclass
class SessionStatus:
    """Bookkeeping for one running poll session."""

    session_id: str
    gameweek: int
    interval_seconds: float
    started_at: str
    ticks: int = 0
    failures: int = 0
    events_emitted: int = 0
    last_tick_at: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_active_fixture(fixture: Dict[str, Any]) -> bool:
    """In progress: started and not yet finished."""
    return bool(fixture.get("started")) and not bool(fixture.get("finished"))


def fixture_row(fixture: Dict[str, Any]) -> Dict[str, Any]:
    """Map an FPL fixture to a fixtures row."""
    return {
        "fpl_fixture_id": fixture["id"],
        "gameweek": fixture.get("event"),
        "home_team_id": fixture.get("team_h"),
        "away_team_id": fixture.get("team_a"),
        "home_score": fixture.get("team_h_score"),
        "away_score": fixture.get("team_a_score"),
        "started": bool(fixture.get("started")),
        "finished": bool(fixture.get("finished")),
        "finished_provisional": bool(fixture.get("finished_provisional")),
        "minutes": fixture.get("minutes", 0) or 0,
        "kickoff_time": fixture.get("kickoff_time"),
    }


def live_stat_row(gameweek: int, element: Dict[str, Any]) -> Dict[str, Any]:
    """Map an event-live element to a live_player_stats row."""
    stats = element.get("stats") or {}
    row: Dict[str, Any] = {"gameweek": gameweek, "player_id": element["id"]}
    for name in LIVE_STAT_FIELDS:
        row[name] = int(stats.get(name) or 0)
    return row


def raw_stat_rows(fixture: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten a fixture's per-side stat arrays into fixture_stat_values rows."""
    rows: List[Dict[str, Any]] = []
    for stat in fixture.get("stats") or []:
        identifier = stat.get("identifier")
        if not identifier:
            continue
        for side, key in FIXTURE_STAT_SIDES:
            for entry in stat.get(key) or []:
                rows.append({
                    "fixture_id": fixture["id"],
                    "gameweek": fixture.get("event"),
                    "stat_identifier": identifier,
                    "side": side.value,
                    "player_id": entry["element"],
                    "value": int(entry.get("value") or 0),
                })
    return rows


def team_row(team: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "team_id": team["id"],
        "team_name": team.get("name", ""),
        "short_name": team.get("short_name", ""),
        "code": team.get("code"),
    }


def player_row(element: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "fpl_player_id": element["id"],
        "web_name": element.get("web_name", ""),
        "first_name": element.get("first_name", ""),
        "second_name": element.get("second_name", ""),
        "team_id": element.get("team"),
        "position": element.get("element_type"),
        "total_points": element.get("total_points", 0) or 0,
        "now_cost": element.get("now_cost"),
        "status": element.get("status"),
    }


def gameweek_row(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Descriptive gameweek columns from bootstrap-static.

    Completion flags are deliberately absent: they are owned by the poll
    cycle's set_window_status.
    """
    return {
        "id": event["id"],
        "name": event.get("name"),
        "deadline_time": event.get("deadline_time"),
        "is_current": bool(event.get("is_current")),
        "is_previous": bool(event.get("is_previous")),
        "is_next": bool(event.get("is_next")),
    }
