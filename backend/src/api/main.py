"""
Backend API: controls live poll sessions and serves the event stream and
gameweek diagnostics to downstream readers.
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env and ensure backend/src is on path
backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(backend_dir / ".env")
sys.path.insert(0, str(backend_dir / "src"))

from fastapi import Depends, FastAPI, HTTPException, Path as PathParam, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import Config
from database.errors import SnapshotStoreError
from database.store_factory import create_store
from fpl_api.client import FPLAPIClient, FPLAPIError
from live.bootstrap import BootstrapRefresher
from live.scheduler import PollingAlreadyActiveError, PollScheduler
from utils.logger import setup_logging

# Built in lifespan so tests can override get_scheduler without Supabase
_scheduler: Optional[PollScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _scheduler
    config = Config()
    setup_logging(config)
    fpl_client = FPLAPIClient(config)
    _scheduler = PollScheduler(config, fpl_client, create_store(config))
    try:
        yield
    finally:
        await _scheduler.shutdown()
        await fpl_client.close()
        _scheduler = None


app = FastAPI(title="FPL Live Sync API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_scheduler() -> PollScheduler:
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not initialised")
    return _scheduler


class StartPollRequest(BaseModel):
    gameweek: int = Field(..., ge=1, le=38, description="Gameweek number")
    interval_seconds: Optional[float] = Field(None, gt=0, description="Delay between poll cycles")


@app.post("/api/v1/polls", status_code=201)
async def start_poll(body: StartPollRequest, scheduler: PollScheduler = Depends(get_scheduler)):
    """Start polling a gameweek; the first cycle runs before this returns."""
    try:
        session_id = await scheduler.start(body.gameweek, body.interval_seconds)
    except PollingAlreadyActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except FPLAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"session_id": session_id, "gameweek": body.gameweek}


@app.get("/api/v1/polls")
async def list_polls(scheduler: PollScheduler = Depends(get_scheduler)):
    sessions = []
    for session_id in scheduler.list_active():
        status = scheduler.get_status(session_id)
        if status is not None:
            sessions.append(status.to_dict())
    return {"sessions": sessions}


@app.get("/api/v1/polls/{session_id}")
async def get_poll(session_id: str, scheduler: PollScheduler = Depends(get_scheduler)):
    status = scheduler.get_status(session_id)
    if status is None:
        raise HTTPException(status_code=404, detail=f"No active session {session_id}")
    return status.to_dict()


@app.delete("/api/v1/polls/{session_id}")
async def stop_poll(session_id: str, scheduler: PollScheduler = Depends(get_scheduler)):
    return {"session_id": session_id, "stopped": scheduler.stop(session_id)}


@app.get("/api/v1/gameweeks/{gameweek}/summary")
def gameweek_summary(
    gameweek: int = PathParam(..., ge=1, le=38),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    try:
        return scheduler.get_gameweek_summary(gameweek)
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/api/v1/gameweeks/{gameweek}/events")
def gameweek_events(
    gameweek: int = PathParam(..., ge=1, le=38),
    limit: int = Query(50, ge=1, le=500, description="Most recent events to return"),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    """Most recent events first."""
    try:
        events = scheduler.store.get_recent_events(gameweek, limit)
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"gameweek": gameweek, "events": events}


@app.get("/api/v1/gameweeks/{gameweek}/consistency")
def gameweek_consistency(
    gameweek: int = PathParam(..., ge=1, le=38),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    return scheduler.validate_data_consistency(gameweek).to_dict()


@app.post("/api/v1/bootstrap/sync")
async def sync_bootstrap(scheduler: PollScheduler = Depends(get_scheduler)):
    """Refresh teams, players and gameweeks from bootstrap-static."""
    try:
        return await BootstrapRefresher(scheduler.fpl_client, scheduler.store).refresh()
    except FPLAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except SnapshotStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@app.get("/health")
def health():
    return {"status": "ok"}
