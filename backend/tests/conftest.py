"""Shared pytest fixtures and helpers."""

import asyncio
import copy
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure backend/src and this directory are importable
BACKEND_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = BACKEND_ROOT / "src"
for path in (SRC_ROOT, Path(__file__).resolve().parent):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

# Set environment before config is imported (Config reads env at import time)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("MIN_REQUEST_INTERVAL", "0")
os.environ.setdefault("LOG_FORMAT", "text")

from config import Config  # noqa: E402
from database.memory_store import MemorySnapshotStore  # noqa: E402


def make_fixture(
    fixture_id: int,
    gameweek: int,
    stats: Optional[Dict[str, Dict[str, List]]] = None,
    started: bool = True,
    finished: bool = False,
    team_h: int = 1,
    team_a: int = 2,
    minutes: int = 45,
) -> Dict[str, Any]:
    """
    Build an FPL fixture payload.

    stats maps identifier -> {"h": [(player, value), ...], "a": [...]}.
    """
    stat_list = []
    for identifier, sides in (stats or {}).items():
        stat_list.append({
            "identifier": identifier,
            "h": [{"element": p, "value": v} for p, v in sides.get("h", [])],
            "a": [{"element": p, "value": v} for p, v in sides.get("a", [])],
        })
    return {
        "id": fixture_id,
        "code": 2400000 + fixture_id,
        "event": gameweek,
        "team_h": team_h,
        "team_a": team_a,
        "team_h_score": 0 if started else None,
        "team_a_score": 0 if started else None,
        "started": started,
        "finished": finished,
        "finished_provisional": finished,
        "minutes": minutes if started else 0,
        "kickoff_time": "2024-08-17T14:00:00Z",
        "stats": stat_list,
    }


def make_element(player_id: int, minutes: int = 0, total_points: int = 0, **stats) -> Dict[str, Any]:
    """Build an event-live element."""
    element_stats = {"minutes": minutes, "total_points": total_points}
    element_stats.update(stats)
    return {"id": player_id, "stats": element_stats, "explain": []}


def make_event_status(gameweek: int, bonus_added: bool = False, days: int = 1) -> Dict[str, Any]:
    return {
        "status": [
            {"event": gameweek, "bonus_added": bonus_added, "date": f"2024-08-{17 + d}", "points": "l"}
            for d in range(days)
        ],
        "leagues": "Updated",
    }


class ScriptedFPLClient:
    """
    Stands in for FPLAPIClient in scheduler tests.

    Serves queued snapshots per gameweek; once a queue is down to its last
    snapshot, that snapshot is repeated.
    """

    def __init__(self):
        self.fixtures: Dict[int, List[List[Dict[str, Any]]]] = {}
        self.elements: Dict[int, List[List[Dict[str, Any]]]] = {}
        self.event_status: Dict[str, Any] = {"status": []}
        self.bootstrap: Dict[str, Any] = {"events": [], "teams": [], "elements": []}
        # Raised (in order) by get_fixtures before serving snapshots
        self.errors: List[Exception] = []
        self.fixture_calls = 0

    def queue(self, gameweek: int, fixtures: List[Dict[str, Any]], elements: Optional[List[Dict[str, Any]]] = None):
        self.fixtures.setdefault(gameweek, []).append(fixtures)
        self.elements.setdefault(gameweek, []).append(elements or [])

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        return copy.deepcopy(item)

    async def get_fixtures(self, gameweek: Optional[int] = None) -> List[Dict[str, Any]]:
        self.fixture_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self._next(self.fixtures[gameweek])

    async def get_event_live(self, gameweek: int) -> Dict[str, Any]:
        return {"elements": self._next(self.elements[gameweek])}

    async def get_event_status(self) -> Dict[str, Any]:
        return copy.deepcopy(self.event_status)

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        return copy.deepcopy(self.bootstrap)

    async def close(self):
        pass


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll predicate until true or timeout; returns the final result."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def config():
    return Config(
        environment="test",
        store_backend="memory",
        min_request_interval=0.0,
        max_retries=3,
        retry_backoff_base=1.0,
        max_retry_delay=60,
        live_poll_interval=30,
        negative_delta_policy="ignore",
    )


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def fpl_client():
    return ScriptedFPLClient()
