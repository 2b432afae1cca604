"""Run the sprint engine with uvicorn: ``python -m sprint_engine``."""

from __future__ import annotations

import uvicorn

from sprint_engine.config import settings


def main() -> None:
    # Logging is configured by the app lifespan
    uvicorn.run("sprint_engine.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
