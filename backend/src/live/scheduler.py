"""
Poll Scheduler - one live polling loop per gameweek.

Each session repeatedly fetches fixtures, live player stats and event status
for its gameweek, persists the snapshots, turns cumulative fixture stats into
events via its own DeltaEngine, and records gameweek completion flags.

Loops are fixed-delay: the next cycle is scheduled only after the previous one
(including its error handling) has finished, so a slow upstream throttles the
loop instead of overlapping cycles.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from config import Config
from fpl_api.client import FPLAPIClient
from live.delta_engine import DeltaEngine
from live.models import (
    ConsistencyReport,
    FixtureEvent,
    SessionStatus,
    WindowStatus,
    is_active_fixture,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[FixtureEvent], None]
ErrorCallback = Callable[[Exception], None]


class PollingAlreadyActiveError(Exception):
    """Raised when a session is already running (or starting) for a gameweek."""

    def __init__(self, gameweek: int, session_id: Optional[str] = None):
        message = f"Polling already active for gameweek {gameweek}"
        if session_id:
            message += f" ({session_id})"
        super().__init__(message)
        self.gameweek = gameweek
        self.session_id = session_id


@dataclass
class PollSession:
    """A running poll loop and the state only it touches."""

    status: SessionStatus
    engine: DeltaEngine
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    on_event: Optional[EventCallback] = None
    on_error: Optional[ErrorCallback] = None

    @property
    def session_id(self) -> str:
        return self.status.session_id

    @property
    def gameweek(self) -> int:
        return self.status.gameweek


def derive_window_status(
    gameweek: int,
    fixtures: List[Dict[str, Any]],
    event_status: Dict[str, Any],
) -> Optional[WindowStatus]:
    """
    Completion flags for a gameweek from one poll's responses.

    bonus_added requires every event-status entry (one per match day) of the
    gameweek to report it; data_checked requires every fixture to be finished.

    Returns:
        WindowStatus, or None when event-status does not mention the gameweek
    """
    entries = [s for s in event_status.get("status", []) if s.get("event") == gameweek]
    if not entries:
        return None
    bonus_added = all(bool(s.get("bonus_added")) for s in entries)
    data_checked = bool(fixtures) and all(bool(f.get("finished")) for f in fixtures)
    return WindowStatus(gameweek=gameweek, bonus_added=bonus_added, data_checked=data_checked)


class PollScheduler:
    """Owns every poll session of the process."""

    def __init__(self, config: Config, fpl_client: FPLAPIClient, store):
        self.config = config
        self.fpl_client = fpl_client
        self.store = store
        self._sessions: Dict[str, PollSession] = {}
        # Gameweeks whose first cycle is in flight
        self._starting: Set[int] = set()
        # Loop tasks still running, including ones already stopped but finishing a cycle
        self._tasks: Set[asyncio.Task] = set()

    def _session_for_gameweek(self, gameweek: int) -> Optional[PollSession]:
        for session in self._sessions.values():
            if session.gameweek == gameweek:
                return session
        return None

    async def start(
        self,
        gameweek: int,
        interval_seconds: Optional[float] = None,
        on_event: Optional[EventCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> str:
        """
        Start polling a gameweek.

        Seeds the delta engine from persisted fixture stat values, runs the
        first cycle inline (its errors propagate and nothing is registered),
        then schedules the loop.

        Args:
            gameweek: Gameweek to poll
            interval_seconds: Delay between cycles; defaults to config.live_poll_interval
            on_event: Called with each new event
            on_error: Called with the exception of each failed cycle after the first

        Returns:
            Session id

        Raises:
            PollingAlreadyActiveError: If the gameweek already has a session
        """
        existing = self._session_for_gameweek(gameweek)
        if existing is not None or gameweek in self._starting:
            raise PollingAlreadyActiveError(
                gameweek, existing.session_id if existing else None
            )

        interval = interval_seconds if interval_seconds is not None else self.config.live_poll_interval
        if interval <= 0:
            raise ValueError("interval_seconds must be positive")

        self._starting.add(gameweek)
        try:
            session_id = f"gw{gameweek}_{int(time.time() * 1000)}"
            engine = DeltaEngine(self.config.negative_delta_policy)
            seeded = engine.seed(self.store.get_raw_fixture_stats(gameweek))

            session = PollSession(
                status=SessionStatus(
                    session_id=session_id,
                    gameweek=gameweek,
                    interval_seconds=interval,
                    started_at=datetime.now(timezone.utc).isoformat(),
                ),
                engine=engine,
                on_event=on_event,
                on_error=on_error,
            )

            await self._run_cycle(session)

            session.task = asyncio.create_task(self._run_loop(session), name=session_id)
            self._tasks.add(session.task)
            session.task.add_done_callback(self._tasks.discard)
            self._sessions[session_id] = session
        finally:
            self._starting.discard(gameweek)

        logger.info("Started polling", extra={
            "session_id": session_id,
            "gameweek": gameweek,
            "interval_seconds": interval,
            "baseline_values": seeded,
        })
        return session_id

    def stop(self, session_id: str) -> bool:
        """
        Stop a session at its next timer boundary.

        An in-flight cycle is allowed to finish. The session's cache is
        dropped when its loop exits.

        Returns:
            True if the session existed
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.stop_event.set()
        logger.info("Stopped polling", extra={
            "session_id": session_id,
            "gameweek": session.gameweek,
            "ticks": session.status.ticks,
        })
        return True

    def stop_all(self):
        """Stop every session."""
        for session_id in list(self._sessions):
            self.stop(session_id)

    async def shutdown(self):
        """Stop every session and wait for in-flight cycles to finish."""
        self.stop_all()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("Poll scheduler shut down")

    def list_active(self) -> List[str]:
        return list(self._sessions)

    def get_status(self, session_id: str) -> Optional[SessionStatus]:
        session = self._sessions.get(session_id)
        return session.status if session else None

    async def _run_loop(self, session: PollSession):
        """Fixed-delay loop: wait the interval (or until stopped), then run a cycle."""
        try:
            while not session.stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        session.stop_event.wait(),
                        timeout=session.status.interval_seconds,
                    )
                    break
                except asyncio.TimeoutError:
                    pass

                try:
                    await self._run_cycle(session)
                except Exception as e:
                    session.status.failures += 1
                    session.status.last_error = f"{type(e).__name__}: {e}"
                    logger.error("Poll cycle failed", extra={
                        "session_id": session.session_id,
                        "gameweek": session.gameweek,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }, exc_info=True)
                    self._notify_error(session, e)
        finally:
            session.engine.discard()

    def _notify_error(self, session: PollSession, error: Exception):
        if session.on_error is None:
            return
        try:
            session.on_error(error)
        except Exception as callback_error:
            logger.warning("on_error callback raised", extra={
                "session_id": session.session_id,
                "error": str(callback_error),
            })

    def _notify_events(self, session: PollSession, events: List[FixtureEvent]):
        if session.on_event is None:
            return
        for event in events:
            try:
                session.on_event(event)
            except Exception as callback_error:
                logger.warning("on_event callback raised", extra={
                    "session_id": session.session_id,
                    "error": str(callback_error),
                })

    async def _fetch_snapshot(self, gameweek: int) -> List[Any]:
        """
        Fetch fixtures, live stats and event status concurrently.

        If one fetch fails the others are cancelled and awaited before the
        error propagates, so no request outlives its cycle.
        """
        tasks = [
            asyncio.create_task(self.fpl_client.get_fixtures(gameweek)),
            asyncio.create_task(self.fpl_client.get_event_live(gameweek)),
            asyncio.create_task(self.fpl_client.get_event_status()),
        ]
        try:
            return await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_cycle(self, session: PollSession) -> List[FixtureEvent]:
        """One fetch-diff-persist cycle for a session."""
        gameweek = session.gameweek
        started = time.monotonic()

        fixtures, live_data, event_status = await self._fetch_snapshot(gameweek)

        self.store.upsert_fixtures(fixtures)
        self.store.upsert_live_player_stats(gameweek, live_data.get("elements", []))

        observed_at = datetime.now(timezone.utc).isoformat()
        active_fixtures = [f for f in fixtures if is_active_fixture(f)]
        checkpoint = session.engine.checkpoint()
        events = session.engine.process(gameweek, active_fixtures, observed_at, session.session_id)
        if events:
            try:
                self.store.append_events(events)
            except Exception:
                # Not persisted: let the next tick observe the same deltas again
                session.engine.restore(checkpoint)
                raise
            self._notify_events(session, events)

        self.store.upsert_raw_fixture_stats(fixtures)

        window_status = derive_window_status(gameweek, fixtures, event_status)
        if window_status is not None:
            self.store.set_window_status(gameweek, window_status.bonus_added, window_status.data_checked)

        session.status.ticks += 1
        session.status.events_emitted += len(events)
        session.status.last_tick_at = observed_at
        session.status.last_error = None

        logger.info("Poll completed", extra={
            "session_id": session.session_id,
            "gameweek": gameweek,
            "events": len(events),
            "active_fixtures": len(active_fixtures),
            "finished": window_status.finished if window_status else None,
            "duration_ms": int((time.monotonic() - started) * 1000),
        })
        return events

    def get_gameweek_summary(self, gameweek: int) -> Dict[str, Any]:
        """Counts and completion flags for a gameweek from the store."""
        fixtures = self.store.get_fixtures_for_window(gameweek)
        status = self.store.get_window_status(gameweek)
        recent_events = self.store.get_recent_events(gameweek, self.config.recent_events_limit)

        session = self._session_for_gameweek(gameweek)
        return {
            "gameweek": gameweek,
            "total_fixtures": len(fixtures),
            "active_fixtures": len([f for f in fixtures if is_active_fixture(f)]),
            "finished_fixtures": len([f for f in fixtures if f.get("finished")]),
            "bonus_added": status.bonus_added if status else False,
            "data_checked": status.data_checked if status else False,
            "finished": status.finished if status else False,
            "recent_events": len(recent_events),
            "session_id": session.session_id if session else None,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def validate_data_consistency(self, gameweek: int) -> ConsistencyReport:
        """
        Compare persisted fixtures and live player rows of a gameweek.

        Diagnostic only: issues are reported and logged, never corrected.
        """
        report = ConsistencyReport(gameweek=gameweek)
        try:
            fixtures = self.store.get_fixtures_for_window(gameweek)
            live_stats = self.store.get_live_player_stats(gameweek)
        except Exception as e:
            report.issues.append(f"Data validation error: {e}")
            logger.warning("Consistency check could not read store", extra={
                "gameweek": gameweek,
                "error": str(e),
            })
            return report

        started_fixtures = [f for f in fixtures if f.get("started")]
        if not started_fixtures and live_stats:
            report.issues.append("Live player data exists but no active fixtures found")

        players_with_minutes = [p for p in live_stats if (p.get("minutes") or 0) > 0]
        if started_fixtures and not players_with_minutes:
            report.issues.append("Active fixtures exist but no players with minutes played")

        if report.issues:
            logger.warning("Gameweek data inconsistent", extra={
                "gameweek": gameweek,
                "issues": report.issues,
            })
        return report
