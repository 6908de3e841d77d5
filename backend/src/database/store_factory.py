"""Build the snapshot store selected by configuration."""

import logging

from config import Config
from database.memory_store import MemorySnapshotStore
from database.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def create_store(config: Config):
    """Return a SupabaseClient or MemorySnapshotStore according to STORE_BACKEND."""
    if config.store_backend == "memory":
        logger.warning("Using in-memory snapshot store; nothing will be persisted")
        return MemorySnapshotStore()
    return SupabaseClient(config)
