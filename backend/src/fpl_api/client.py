"""
FPL API Client with rate limiting, retry logic, and error handling.

Handles all communication with the Fantasy Premier League API. Every call is a
fresh fetch; callers decide what (if anything) to cache.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx
from asyncio_throttle import Throttler

from config import Config

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://fantasy.premierleague.com/",
}


class FPLAPIError(Exception):
    """Base exception for FPL API errors."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class FPLAPIRateLimitError(FPLAPIError):
    """Raised when the last attempt before giving up was rate limited (429)."""
    pass


class FPLAPIClient:
    """Client for interacting with the FPL API."""

    def __init__(
        self,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.base_url = config.fpl_api_base_url
        self.max_retries = config.max_retries
        self.retry_backoff_base = config.retry_backoff_base
        self.max_retry_delay = config.max_retry_delay

        # Rate limiting: max N req/min, min interval between requests
        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )
        self.min_interval = config.min_request_interval
        self.last_request_time = 0.0

        # HTTP client (no base_url to avoid issues with URL construction)
        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
            transport=transport,
        )

    async def _wait_for_rate_limit(self):
        """Wait to respect rate limiting."""
        await self.throttler.acquire()

        # Also enforce minimum interval between requests
        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_interval:
            wait_time = self.min_interval - time_since_last
            # Add jitter (±25%)
            jitter = wait_time * 0.25 * (random.random() * 2 - 1)
            await asyncio.sleep(wait_time + jitter)

        self.last_request_time = time.time()

    def _backoff_delay(self, attempt: int) -> float:
        """Delay before retry number attempt + 1: base * 2^attempt, capped."""
        return min(self.retry_backoff_base * (2 ** attempt), self.max_retry_delay)

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        base = self.base_url.rstrip("/")
        return f"{base}/{endpoint.lstrip('/')}"

    async def _request_with_retry(self, endpoint: str) -> httpx.Response:
        """
        GET an endpoint, retrying non-2xx responses and network failures.

        Makes at most max_retries + 1 attempts, sleeping base * 2^attempt
        between them. 429 responses follow the same schedule and are only
        logged differently.

        Args:
            endpoint: API endpoint path (may include a query string)

        Returns:
            httpx.Response object with a 2xx status

        Raises:
            FPLAPIRateLimitError: If the final attempt was rate limited
            FPLAPIError: For any other failure after retries are exhausted
        """
        url = self._build_url(endpoint)
        last_error: Optional[FPLAPIError] = None
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            await self._wait_for_rate_limit()

            try:
                response = await self.client.get(url)
            except httpx.TransportError as e:
                last_exception = e
                last_error = FPLAPIError(
                    f"Network error on {endpoint}: {e}",
                    endpoint=endpoint,
                )
                logger.warning(
                    "Network error from FPL API",
                    extra={
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
            else:
                if response.is_success:
                    return response

                status_code = response.status_code
                last_exception = None
                if status_code == 429:
                    last_error = FPLAPIRateLimitError(
                        f"Rate limited on {endpoint}",
                        endpoint=endpoint,
                        status_code=status_code,
                    )
                    logger.warning(
                        "Rate limited by FPL API",
                        extra={
                            "endpoint": endpoint,
                            "status_code": status_code,
                            "attempt": attempt + 1,
                        }
                    )
                else:
                    error_text = response.text[:500]  # Limit error text length
                    last_error = FPLAPIError(
                        f"HTTP {status_code} on {endpoint}: {error_text}",
                        endpoint=endpoint,
                        status_code=status_code,
                    )
                    logger.warning(
                        "Error response from FPL API",
                        extra={
                            "endpoint": endpoint,
                            "status_code": status_code,
                            "attempt": attempt + 1,
                        }
                    )

            if attempt < self.max_retries:
                wait_time = self._backoff_delay(attempt)
                logger.info(
                    "Retrying FPL API request",
                    extra={
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "wait_time": wait_time,
                    }
                )
                await asyncio.sleep(wait_time)

        logger.error(
            "FPL API request failed after retries",
            extra={
                "endpoint": endpoint,
                "status_code": last_error.status_code if last_error else None,
                "retries": self.max_retries,
            }
        )
        if last_error is None:
            last_error = FPLAPIError(f"Request failed: {endpoint}", endpoint=endpoint)
        raise last_error from last_exception

    async def _get_json(self, endpoint: str) -> Any:
        """GET an endpoint and decode its JSON body."""
        response = await self._request_with_retry(endpoint)

        # HTML instead of JSON usually means a block page or redirect
        content_type = response.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            logger.error("API returned HTML (blocking?)", extra={
                "endpoint": endpoint,
                "status_code": response.status_code,
                "content_type": content_type
            })
            raise FPLAPIError(
                "FPL API returned HTML instead of JSON - request may be blocked",
                endpoint=endpoint,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.error("JSON parse failed", extra={
                "endpoint": endpoint,
                "status_code": response.status_code,
                "response_preview": response.text[:500],
                "error": str(e),
            })
            raise FPLAPIError(
                f"Failed to parse JSON from {endpoint}: {e}",
                endpoint=endpoint,
                status_code=response.status_code,
            ) from e

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        """
        Get bootstrap-static data (players, teams, gameweeks).

        Returns:
            Bootstrap static data dictionary
        """
        data = await self._get_json("/bootstrap-static/")

        logger.info("Bootstrap-static fetched", extra={
            "players_count": len(data.get("elements", [])),
            "teams_count": len(data.get("teams", [])),
            "gameweeks_count": len(data.get("events", []))
        })

        return data

    async def get_fixtures(self, gameweek: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Get fixtures, optionally only those of one gameweek.

        Args:
            gameweek: Gameweek number to filter by

        Returns:
            List of fixture dictionaries
        """
        endpoint = f"/fixtures/?event={gameweek}" if gameweek else "/fixtures/"
        fixtures = await self._get_json(endpoint)

        logger.debug("Fetched fixtures", extra={
            "gameweek": gameweek,
            "fixtures_count": len(fixtures)
        })

        return fixtures

    async def get_event_live(self, gameweek: int) -> Dict[str, Any]:
        """
        Get live per-player stats for a gameweek.

        Args:
            gameweek: Gameweek number

        Returns:
            Live event data dictionary (cumulative counters under elements[].stats)
        """
        data = await self._get_json(f"/event/{gameweek}/live/")

        logger.debug("Fetched live event data", extra={
            "gameweek": gameweek,
            "players_count": len(data.get("elements", []))
        })

        return data

    async def get_event_status(self) -> Dict[str, Any]:
        """
        Get event status (bonus points finalisation per gameweek/date).

        Returns:
            Dictionary with a status list of {event, date, bonus_added, points}
        """
        data = await self._get_json("/event-status/")

        logger.debug("Fetched event status", extra={
            "status_count": len(data.get("status", []))
        })

        return data

    async def get_current_gameweek(self) -> int:
        """Return the is_current gameweek from bootstrap-static (1 before the season starts)."""
        bootstrap = await self.get_bootstrap_static()
        for event in bootstrap.get("events", []):
            if event.get("is_current"):
                return event["id"]
        return 1

    async def get_active_fixtures(self, gameweek: int) -> List[Dict[str, Any]]:
        """Fixtures of a gameweek that have started but not finished."""
        fixtures = await self.get_fixtures(gameweek)
        return [f for f in fixtures if f.get("started") and not f.get("finished")]

    async def is_gameweek_finished(self, gameweek: int) -> bool:
        fixtures = await self.get_fixtures(gameweek)
        return all(f.get("finished") for f in fixtures)

    async def get_bonus_added_status(self, gameweek: Optional[int] = None) -> bool:
        """
        Whether bonus points have been added for a gameweek.

        Args:
            gameweek: Gameweek number; defaults to the current gameweek

        Returns:
            True only if every event-status entry for the gameweek has bonus_added
        """
        event_status = await self.get_event_status()
        if gameweek is None:
            gameweek = await self.get_current_gameweek()
        entries = [s for s in event_status.get("status", []) if s.get("event") == gameweek]
        return bool(entries) and all(s.get("bonus_added") for s in entries)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
