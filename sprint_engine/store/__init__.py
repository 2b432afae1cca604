"""Sprint store backends."""

from __future__ import annotations

from sprint_engine.config import settings
from sprint_engine.store.base import SprintStore


def build_store(backend: str | None = None) -> SprintStore:
    """Instantiate the configured store backend ("postgres" or "memory")."""
    backend = (backend or settings.store_backend).lower()
    if backend == "memory":
        from sprint_engine.store.memory_store import MemoryStore

        return MemoryStore()
    if backend == "postgres":
        from sprint_engine.store.postgres_store import PostgresStore

        return PostgresStore()
    raise ValueError(f"Unknown store backend: {backend!r} (expected 'postgres' or 'memory')")
