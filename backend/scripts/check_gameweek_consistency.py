#!/usr/bin/env python3
"""
Check a gameweek's persisted fixtures vs live_player_stats.

Flags:
  - live player rows exist but no fixture has started
  - fixtures have started but no player has minutes

Also prints the gameweek summary and the most recent events.

Usage:
    cd backend && python scripts/check_gameweek_consistency.py --gameweek 12

Uses SUPABASE_URL and SUPABASE_KEY (or SUPABASE_SERVICE_KEY) from .env.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / ".env")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from config import Config
from database.store_factory import create_store
from fpl_api.client import FPLAPIClient
from live.scheduler import PollScheduler


async def check(config: Config, gameweek: int, events_limit: int) -> bool:
    """Print the gameweek report; returns whether the data is consistent."""
    store = create_store(config)
    # The scheduler is only used for its diagnostics, no session is started
    fpl_client = FPLAPIClient(config)
    try:
        scheduler = PollScheduler(config, fpl_client, store)

        summary = scheduler.get_gameweek_summary(gameweek)
        print("=" * 70)
        print(f"GAMEWEEK {gameweek}")
        print("=" * 70)
        print(f"Fixtures: {summary['total_fixtures']} total, {summary['active_fixtures']} active, "
              f"{summary['finished_fixtures']} finished")
        print(f"bonus_added={summary['bonus_added']} data_checked={summary['data_checked']} "
              f"finished={summary['finished']}\n")

        report = scheduler.validate_data_consistency(gameweek)
        if report.consistent:
            print("✅ Consistent")
        else:
            for issue in report.issues:
                print(f"⚠️  {issue}")

        events = store.get_recent_events(gameweek, events_limit)
        print(f"\nRecent events ({len(events)}):")
        for e in events:
            print(f"  {e['occurred_at']}  fixture={e['fixture_id']} {e['event_type']:<22} "
                  f"player={e['player_id']:<5} side={e['side']} delta={e['delta_value']}")
        return report.consistent
    finally:
        await fpl_client.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Check gameweek data consistency")
    parser.add_argument("--gameweek", type=int, required=True)
    parser.add_argument("--events", type=int, default=10, help="Recent events to print")
    args = parser.parse_args(argv)

    try:
        config = Config()
    except ValueError as e:
        print(f"Config error: {e}")
        sys.exit(1)

    consistent = asyncio.run(check(config, args.gameweek, args.events))
    sys.exit(0 if consistent else 2)


if __name__ == "__main__":
    main()
