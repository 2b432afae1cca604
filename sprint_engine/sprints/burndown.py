"""Sprint metrics and burndown projection.

Everything here is a pure function of a sprint's currently attached stories
and its date range. Nothing is read from stored history.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Iterable

from sprint_engine.models.schemas import (
    BurndownPoint,
    Sprint,
    SprintMetrics,
    StoriesCount,
    Story,
    StoryStatus,
)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from zero for positive values, unlike Python's banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def total_story_points(stories: Iterable[Story]) -> int:
    return sum(s.points for s in stories)


def completed_story_points(stories: Iterable[Story]) -> int:
    return sum(s.points for s in stories if s.is_done)


def count_stories(stories: list[Story]) -> StoriesCount:
    by_status = {status: 0 for status in StoryStatus}
    for story in stories:
        by_status[story.status] += 1
    return StoriesCount(
        total=len(stories),
        todo=by_status[StoryStatus.TODO],
        in_progress=by_status[StoryStatus.IN_PROGRESS],
        done=by_status[StoryStatus.DONE],
        blocked=by_status[StoryStatus.BLOCKED],
    )


def generate_burndown(start: date, end: date, total_points: int) -> list[BurndownPoint]:
    """Day-by-day ideal burndown from ``start`` to ``end`` inclusive.

    ``remaining_points`` repeats the sprint total on every day. Producing the
    real remaining figure per day would need daily snapshots of story status,
    which are not recorded.
    """
    total_days = math.ceil((end - start) / timedelta(days=1))
    if total_days <= 0:
        return [BurndownPoint(date=start.isoformat(), ideal_remaining=total_points, remaining_points=total_points)]

    per_day = total_points / total_days
    points = []
    for day in range(total_days + 1):
        ideal = round_half_up(total_points - per_day * day)
        points.append(BurndownPoint(
            date=(start + timedelta(days=day)).isoformat(),
            ideal_remaining=max(0, int(ideal)),
            remaining_points=total_points,
        ))
    return points


def calculate_metrics(sprint: Sprint, stories: list[Story]) -> SprintMetrics:
    """Aggregate point totals, status counts and the burndown for one sprint."""
    total = total_story_points(stories)
    completed = completed_story_points(stories)
    percentage = round_half_up(completed / total * 100, 2) if total > 0 else 0.0

    return SprintMetrics(
        total_story_points=total,
        completed_story_points=completed,
        remaining_story_points=total - completed,
        completion_percentage=percentage,
        stories_count=count_stories(stories),
        velocity=sprint.velocity,
        capacity=sprint.capacity,
        burndown_data=generate_burndown(sprint.start_date, sprint.end_date, total),
    )
