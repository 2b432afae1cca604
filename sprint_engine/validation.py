"""Startup configuration checks.

Each environment names the rules it enforces. A failing rule stops the
process before any store connection is attempted.
"""

from __future__ import annotations

import logging
import sys

from sprint_engine.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

KNOWN_STORE_BACKENDS = ("postgres", "memory")


# ── Validation Rules ──

VALIDATION_RULES = {
    "development": [
        "known_store_backend",
        "positive_pool_size",
    ],
    "staging": [
        "known_store_backend",
        "positive_pool_size",
        "postgres_backend",
        "postgres_url",
        "asyncpg_driver",
    ],
    "production": [
        "known_store_backend",
        "positive_pool_size",
        "postgres_backend",
        "postgres_url",
        "asyncpg_driver",
        # Production-specific security
        "has_api_keys_configured",
    ],
}


# ── Validation Functions ──


def validate_config(settings: Settings | None = None) -> list[str]:
    """Check the settings against the rules of their environment.

    Unknown environments are held to the development rules.

    Returns:
        List of error messages (empty if valid)
    """
    settings = settings or default_settings
    rules = VALIDATION_RULES.get(settings.environment, VALIDATION_RULES["development"])
    return [error for rule in rules if (error := _run_validation(rule, settings))]


def _run_validation(rule: str, settings: Settings) -> str | None:
    """Return an error message if ``rule`` fails, None otherwise."""
    if rule == "known_store_backend":
        if settings.store_backend.lower() not in KNOWN_STORE_BACKENDS:
            return f"SPRINT_STORE_BACKEND must be 'postgres' or 'memory', got '{settings.store_backend}'"

    elif rule == "positive_pool_size":
        if settings.db_pool_size < 1 or settings.db_max_overflow < 0:
            return "SPRINT_DB_POOL_SIZE must be at least 1 and SPRINT_DB_MAX_OVERFLOW must not be negative"

    elif rule == "postgres_backend":
        if not settings.uses_postgres:
            return "The in-memory store is for development only; set SPRINT_STORE_BACKEND=postgres"

    elif rule == "postgres_url":
        if not settings.postgres_url:
            return "SPRINT_POSTGRES_URL is required"

    elif rule == "asyncpg_driver":
        if settings.postgres_url and not settings.postgres_url.startswith("postgresql+asyncpg://"):
            return "SPRINT_POSTGRES_URL must use the asyncpg driver (postgresql+asyncpg://...)"

    elif rule == "has_api_keys_configured":
        if not settings.configured_api_keys:
            return "SPRINT_API_KEYS must be configured in production (comma-separated list of API keys)"

    return None


def validate_and_exit(settings: Settings | None = None) -> None:
    """Run ``validate_config`` and exit with status 1 on any failure.

    Called from the application lifespan before the store is opened.
    """
    settings = settings or default_settings
    logger.info("Checking %s configuration", settings.environment)

    errors = validate_config(settings)
    if errors:
        logger.error("Refusing to start: %d configuration problem(s)", len(errors))
        for error in errors:
            logger.error("  - %s", error)
        sys.exit(1)

    logger.info(
        "Configuration OK (store=%s, serializable=%s, api_keys=%d)",
        settings.store_backend,
        settings.serializable_transactions,
        len(settings.configured_api_keys),
    )
