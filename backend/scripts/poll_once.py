#!/usr/bin/env python3
"""
Script to manually run live polling for a gameweek.

Starts a poll session (the first cycle runs immediately), keeps it running
for the requested number of extra cycles, then stops and prints the
gameweek summary.

Usage:
    python3 scripts/poll_once.py --gameweek 12
    python3 scripts/poll_once.py --gameweek 12 --cycles 3 --interval 20
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

# Add src directory to path
backend_dir = Path(__file__).parent.parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))

from config import Config
from database.store_factory import create_store
from fpl_api.client import FPLAPIClient
from live.scheduler import PollScheduler
from utils.logger import setup_logging


async def poll(gameweek: int, cycles: int, interval: float):
    config = Config()
    setup_logging(config)

    fpl_client = FPLAPIClient(config)
    scheduler = PollScheduler(config, fpl_client, create_store(config))

    def on_event(event):
        print(f"  + {event.event_type} player={event.player_id} fixture={event.fixture_id} "
              f"side={event.side} delta={event.delta_value}")

    try:
        print(f"🔄 Polling gameweek {gameweek}...\n")
        session_id = await scheduler.start(gameweek, interval, on_event=on_event)
        if cycles > 0:
            await asyncio.sleep(interval * cycles + 1)
        scheduler.stop(session_id)
        print("\n📊 Gameweek summary:")
        print(json.dumps(scheduler.get_gameweek_summary(gameweek), indent=2))
    except Exception as e:
        print(f"\n❌ Error while polling: {e}")
        sys.exit(1)
    finally:
        await scheduler.shutdown()
        await fpl_client.close()


def main():
    parser = argparse.ArgumentParser(description="Run live polling for a gameweek")
    parser.add_argument("--gameweek", type=int, required=True, help="Gameweek to poll")
    parser.add_argument("--cycles", type=int, default=0, help="Extra cycles after the first")
    parser.add_argument("--interval", type=float, default=30.0, help="Seconds between cycles")
    args = parser.parse_args()
    asyncio.run(poll(args.gameweek, args.cycles, args.interval))


if __name__ == "__main__":
    main()
