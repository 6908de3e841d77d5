#!/usr/bin/env python3
"""
FPL Live Sync Service - Main Entry Point

Refreshes reference data from bootstrap-static, then polls the current
gameweek, turning cumulative live stats into an append-only event stream.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

# Load .env from backend directory before Config() is used
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from database.store_factory import create_store
from fpl_api.client import FPLAPIClient
from live.bootstrap import BootstrapRefresher
from live.scheduler import PollScheduler
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class FPLLiveSyncService:
    """Main service class for live gameweek sync."""

    def __init__(self, config: Config = None):
        self.config = config or Config()
        self.fpl_client = None
        self.store = None
        self.scheduler = None
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """Start the sync service and block until shutdown."""
        logger.info("Starting FPL Live Sync Service", extra={
            "version": "1.0.0",
            "environment": self.config.environment,
            "store_backend": self.config.store_backend,
        })

        self.fpl_client = FPLAPIClient(self.config)
        self.store = create_store(self.config)
        self.scheduler = PollScheduler(self.config, self.fpl_client, self.store)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown, sig)

        try:
            current_gameweek = await self._refresh_bootstrap()
            if self.config.auto_start_current_gameweek:
                await self._start_current_gameweek(current_gameweek)
            await self._shutdown_event.wait()
        finally:
            await self.scheduler.shutdown()
            await self.fpl_client.close()
            logger.info("FPL Live Sync Service stopped")

    async def _refresh_bootstrap(self):
        """Refresh reference data; returns the current gameweek (None if unavailable)."""
        try:
            result = await BootstrapRefresher(self.fpl_client, self.store).refresh()
            return result["current_gameweek"]
        except Exception as e:
            logger.error("Bootstrap refresh failed", extra={
                "error": str(e),
                "error_type": type(e).__name__
            }, exc_info=True)
            return None

    async def _start_current_gameweek(self, gameweek):
        """Start polling the current gameweek, retrying every poll interval until it succeeds."""
        while not self._shutdown_event.is_set():
            if gameweek is None:
                gameweek = await self._refresh_bootstrap()
            if gameweek is not None:
                try:
                    await self.scheduler.start(gameweek)
                    return
                except Exception as e:
                    logger.error("Could not start polling", extra={
                        "gameweek": gameweek,
                        "error": str(e),
                        "error_type": type(e).__name__
                    }, exc_info=True)
            else:
                logger.info("No current gameweek; waiting before retry")
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.config.live_poll_interval)
            except asyncio.TimeoutError:
                pass

    def _handle_shutdown(self, signum):
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal", extra={"signal": signum})
        self._shutdown_event.set()


async def main():
    """Main entry point."""
    config = Config()
    setup_logging(config)

    service = FPLLiveSyncService(config)
    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error("Service crashed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
