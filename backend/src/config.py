"""
Configuration management for FPL Live Sync Service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional


STORE_BACKENDS = ("supabase", "memory")
NEGATIVE_DELTA_POLICIES = ("ignore", "correct")


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Snapshot store: "supabase" for the real database, "memory" for local dry runs
    store_backend: str = os.getenv("STORE_BACKEND", "supabase")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # FPL API Configuration
    fpl_api_base_url: str = os.getenv("FPL_API_BASE_URL", "https://fantasy.premierleague.com/api")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "30.0"))

    # Rate Limiting
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "30"))
    min_request_interval: float = float(os.getenv("MIN_REQUEST_INTERVAL", "1.0"))

    # Retry Configuration: delay = base * 2^attempt (1s, 2s, 4s)
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    retry_backoff_base: float = float(os.getenv("RETRY_BACKOFF_BASE", "1.0"))
    max_retry_delay: int = int(os.getenv("MAX_RETRY_DELAY", "60"))

    # Live polling (seconds between the end of one cycle and the start of the next)
    live_poll_interval: int = int(os.getenv("LIVE_POLL_INTERVAL", "30"))
    # Start a session for the bootstrap is_current gameweek when the service boots
    auto_start_current_gameweek: bool = os.getenv("AUTO_START_CURRENT_GAMEWEEK", "true").lower() == "true"
    # What to do when an upstream cumulative stat goes down (e.g. goal ruled out): ignore or correct
    negative_delta_policy: str = os.getenv("NEGATIVE_DELTA_POLICY", "ignore")
    # Recent events included in gameweek summaries
    recent_events_limit: int = int(os.getenv("RECENT_EVENTS_LIMIT", "10"))

    # Control API
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if self.store_backend not in STORE_BACKENDS:
            errors.append(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")
        if self.store_backend == "supabase":
            if not self.supabase_url:
                errors.append("SUPABASE_URL is required")
            if not self.supabase_key:
                errors.append("SUPABASE_KEY is required")
        if self.negative_delta_policy not in NEGATIVE_DELTA_POLICIES:
            errors.append(
                f"NEGATIVE_DELTA_POLICY must be one of {', '.join(NEGATIVE_DELTA_POLICIES)}"
            )
        if self.live_poll_interval <= 0:
            errors.append("LIVE_POLL_INTERVAL must be positive")
        if self.max_retries < 0:
            errors.append("MAX_RETRIES must not be negative")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Validate after initialization."""
        self.store_backend = self.store_backend.lower()
        self.negative_delta_policy = self.negative_delta_policy.lower()
        self.validate()
