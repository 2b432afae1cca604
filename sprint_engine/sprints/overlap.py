"""Scheduling-window overlap checks for open sprints."""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from sprint_engine.models.schemas import OPEN_SPRINT_STATUSES

if TYPE_CHECKING:
    from sprint_engine.store.base import UnitOfWork

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Closed-interval intersection: sharing a single boundary day counts."""
    return a_start <= b_end and a_end >= b_start


async def check_overlap(
    uow: UnitOfWork,
    project_id: str,
    start_date: date,
    end_date: date,
    exclude_sprint_id: str | None = None,
) -> bool:
    """Return True if [start_date, end_date] collides with an open sprint of the project.

    Completed sprints are ignored, so their dates may be reused.
    """
    candidates = await uow.sprints.find_many(
        project_id=project_id,
        statuses=OPEN_SPRINT_STATUSES,
        exclude_id=exclude_sprint_id,
    )
    for sprint in candidates:
        if intervals_overlap(start_date, end_date, sprint.start_date, sprint.end_date):
            logger.debug(
                "Range %s..%s overlaps sprint %s (%s..%s)",
                start_date, end_date, sprint.id, sprint.start_date, sprint.end_date,
            )
            return True
    return False
