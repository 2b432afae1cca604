"""Pydantic models for data flowing through the sprint engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enumerations ──


class SprintStatus(str, Enum):
    """Lifecycle state of a sprint. Moves strictly PLANNING → ACTIVE → COMPLETED."""

    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

    @property
    def rank(self) -> int:
        """Position in the lifecycle, used for ordering listings."""
        return _LIFECYCLE.index(self)

    @property
    def is_open(self) -> bool:
        """Open sprints hold a scheduling window and take part in overlap checks."""
        return self in OPEN_SPRINT_STATUSES

    def can_transition_to(self, target: SprintStatus) -> bool:
        """Only the single next step in the lifecycle is legal."""
        return self.rank + 1 == target.rank


_LIFECYCLE = (SprintStatus.PLANNING, SprintStatus.ACTIVE, SprintStatus.COMPLETED)

OPEN_SPRINT_STATUSES = frozenset({SprintStatus.PLANNING, SprintStatus.ACTIVE})


class StoryStatus(str, Enum):
    """Workflow status of a backlog story."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


class CommentType(str, Enum):
    """Category of a sprint comment."""

    GENERAL = "GENERAL"
    IMPEDIMENT = "IMPEDIMENT"
    QUESTION = "QUESTION"
    DECISION = "DECISION"
    ACTION_ITEM = "ACTION_ITEM"


# ── Records ──


class Story(BaseModel):
    """The slice of a backlog story the engine reads and writes."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str = ""
    project_id: str
    sprint_id: str | None = None
    status: StoryStatus = StoryStatus.TODO
    story_points: int | None = None

    @property
    def points(self) -> int:
        """Story points with a missing estimate counted as zero."""
        return self.story_points or 0

    @property
    def is_done(self) -> bool:
        return self.status == StoryStatus.DONE


class SprintComment(BaseModel):
    """An append-only note attached to a sprint."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    type: CommentType = CommentType.GENERAL
    sprint_id: str
    author_id: str
    created_at: datetime = Field(default_factory=utcnow)


class Sprint(BaseModel):
    """A fixed-date-range unit of work for a project."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    goal: str | None = None
    start_date: date
    end_date: date
    status: SprintStatus = SprintStatus.PLANNING
    capacity: int | None = None
    velocity: int | None = None
    project_id: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SprintDetail(Sprint):
    """A sprint together with its attached stories and comments (newest first)."""

    stories: list[Story] = Field(default_factory=list)
    comments: list[SprintComment] = Field(default_factory=list)


# ── Requests ──


class CreateSprintRequest(BaseModel):
    """Payload for creating a sprint."""

    name: str = Field(min_length=1, max_length=200)
    goal: str | None = None
    start_date: date
    end_date: date
    capacity: int | None = Field(default=None, ge=0)
    project_id: str = Field(min_length=1)


class UpdateSprintRequest(BaseModel):
    """Partial update of a sprint's editable fields.

    Status, velocity and project ownership are not editable here; lifecycle
    endpoints own them.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=200)
    goal: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    capacity: int | None = Field(default=None, ge=0)


class AddStoriesRequest(BaseModel):
    story_ids: list[str] = Field(min_length=1)


class CreateSprintCommentRequest(BaseModel):
    content: str = Field(min_length=1)
    type: CommentType = CommentType.GENERAL


# ── Metrics ──


class StoriesCount(BaseModel):
    """Attached stories counted by status."""

    total: int = 0
    todo: int = 0
    in_progress: int = 0
    done: int = 0
    blocked: int = 0


class BurndownPoint(BaseModel):
    """One day of the burndown series."""

    date: str = Field(description="ISO date, e.g. '2025-11-01'")
    ideal_remaining: int
    remaining_points: int = Field(
        description="Total points of the sprint; not a historical trace (no daily snapshots are kept)",
    )


class SprintMetrics(BaseModel):
    """Point aggregates and burndown for a sprint, computed from current state."""

    total_story_points: int = 0
    completed_story_points: int = 0
    remaining_story_points: int = 0
    completion_percentage: float = 0.0
    stories_count: StoriesCount = Field(default_factory=StoriesCount)
    velocity: int | None = None
    capacity: int | None = None
    burndown_data: list[BurndownPoint] = Field(default_factory=list)
