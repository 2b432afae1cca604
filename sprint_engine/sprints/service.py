"""Sprint lifecycle service.

Owns the PLANNING → ACTIVE → COMPLETED state machine, the story membership
operations that must agree with it, metrics, and the sprint comment log.

Every public operation runs inside exactly one store transaction. The
checks made here (overlap, single active sprint) are read-then-write; the
store's own constraints reject whichever concurrent writer loses.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable

from sprint_engine.exceptions import ConflictError, NotFoundError, ValidationError
from sprint_engine.metrics import track_operation, transitions_total, velocity_points
from sprint_engine.models.schemas import (
    CreateSprintRequest,
    CreateSprintCommentRequest,
    Sprint,
    SprintComment,
    SprintDetail,
    SprintMetrics,
    SprintStatus,
    Story,
    StoryStatus,
    UpdateSprintRequest,
)
from sprint_engine.sprints.burndown import calculate_metrics, completed_story_points
from sprint_engine.sprints.overlap import check_overlap
from sprint_engine.store.base import SprintStore, UnitOfWork

logger = logging.getLogger(__name__)

DATE_ORDER_MESSAGE = "End date must be after start date"
OVERLAP_MESSAGE = "Sprint dates overlap with existing active or planning sprint"
ALREADY_ACTIVE_MESSAGE = "Cannot start sprint: Another sprint is already active in this project"

# Fields an update may explicitly clear
_CLEARABLE_FIELDS = {"goal", "capacity"}


def _validate_date_order(start_date: date, end_date: date) -> None:
    if start_date >= end_date:
        raise ValidationError(DATE_ORDER_MESSAGE)


class SprintService:
    """Operations exposed to the HTTP layer."""

    def __init__(self, store: SprintStore) -> None:
        self._store = store

    # ── Helpers ──

    async def _require_sprint(self, uow: UnitOfWork, sprint_id: str) -> Sprint:
        sprint = await uow.sprints.find_by_id(sprint_id)
        if sprint is None:
            raise NotFoundError(f"Sprint with ID {sprint_id} not found")
        return sprint

    async def _details(self, uow: UnitOfWork, sprints: list[Sprint]) -> list[SprintDetail]:
        """Attach stories and comments with one read each, however many sprints."""
        if not sprints:
            return []
        sprint_ids = [s.id for s in sprints]

        stories: dict[str, list[Story]] = defaultdict(list)
        for story in await uow.stories.find_many(sprint_ids=sprint_ids):
            stories[story.sprint_id].append(story)
        comments: dict[str, list[SprintComment]] = defaultdict(list)
        for comment in await uow.comments.find_for_sprints(sprint_ids):
            comments[comment.sprint_id].append(comment)

        return [
            SprintDetail(**s.model_dump(), stories=stories[s.id], comments=comments[s.id])
            for s in sprints
        ]

    async def _detail(self, uow: UnitOfWork, sprint: Sprint) -> SprintDetail:
        return (await self._details(uow, [sprint]))[0]

    # ── CRUD ──

    @track_operation("create")
    async def create(self, request: CreateSprintRequest) -> SprintDetail:
        """Create a sprint in PLANNING after checking date order and overlap."""
        _validate_date_order(request.start_date, request.end_date)

        async with self._store.transaction() as uow:
            if await check_overlap(uow, request.project_id, request.start_date, request.end_date):
                raise ConflictError(OVERLAP_MESSAGE)

            sprint = await uow.sprints.create({
                **request.model_dump(),
                "status": SprintStatus.PLANNING,
                "velocity": None,
            })
            detail = await self._detail(uow, sprint)

        logger.info(
            "Sprint created: %s '%s' for project %s (%s..%s)",
            sprint.id, sprint.name, sprint.project_id, sprint.start_date, sprint.end_date,
        )
        return detail

    @track_operation("find_all")
    async def find_all(
        self, project_id: str | None = None, status: SprintStatus | None = None
    ) -> list[SprintDetail]:
        """List sprints, optionally filtered, in lifecycle order then newest start first."""
        async with self._store.transaction() as uow:
            sprints = await uow.sprints.find_many(
                project_id=project_id,
                statuses=[status] if status is not None else None,
            )
            sprints.sort(key=lambda s: (s.status.rank, -s.start_date.toordinal()))
            return await self._details(uow, sprints)

    @track_operation("find_one")
    async def find_one(self, sprint_id: str) -> SprintDetail:
        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)
            return await self._detail(uow, sprint)

    @track_operation("update")
    async def update(self, sprint_id: str, request: UpdateSprintRequest) -> SprintDetail:
        """Apply a partial update; date changes are re-validated like create."""
        changes = {
            field: value
            for field, value in request.model_dump(exclude_unset=True).items()
            if value is not None or field in _CLEARABLE_FIELDS
        }

        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)

            start_date = changes.get("start_date", sprint.start_date)
            end_date = changes.get("end_date", sprint.end_date)
            if start_date != sprint.start_date or end_date != sprint.end_date:
                _validate_date_order(start_date, end_date)
                # Completed sprints no longer hold a scheduling window
                if sprint.status.is_open and await check_overlap(
                    uow, sprint.project_id, start_date, end_date, exclude_sprint_id=sprint.id
                ):
                    raise ConflictError(OVERLAP_MESSAGE)

            if changes:
                sprint = await uow.sprints.update(sprint_id, changes)
            detail = await self._detail(uow, sprint)

        logger.info("Sprint updated: %s fields=%s", sprint_id, sorted(changes))
        return detail

    @track_operation("remove")
    async def remove(self, sprint_id: str) -> Sprint:
        """Delete a sprint, returning its stories to the backlog and dropping its comments."""
        async with self._store.transaction() as uow:
            await self._require_sprint(uow, sprint_id)
            detached = await uow.stories.update_many({"sprint_id": None}, sprint_id=sprint_id)
            await uow.comments.delete_many(sprint_id)
            deleted = await uow.sprints.delete(sprint_id)

        logger.info("Sprint removed: %s (%d stories returned to backlog)", sprint_id, detached)
        return deleted

    # ── Lifecycle ──

    @track_operation("start_sprint")
    async def start_sprint(self, sprint_id: str) -> SprintDetail:
        """Move a PLANNING sprint to ACTIVE; only one ACTIVE sprint per project."""
        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)
            if not sprint.status.can_transition_to(SprintStatus.ACTIVE):
                raise ValidationError("Only sprints in PLANNING status can be started")

            active = await uow.sprints.find_many(
                project_id=sprint.project_id,
                statuses=[SprintStatus.ACTIVE],
                exclude_id=sprint.id,
            )
            if active:
                raise ConflictError(ALREADY_ACTIVE_MESSAGE)

            sprint = await uow.sprints.update(sprint_id, {"status": SprintStatus.ACTIVE})
            detail = await self._detail(uow, sprint)

        transitions_total.labels(transition="planning_to_active").inc()
        logger.info("Sprint started: %s (project %s)", sprint_id, sprint.project_id)
        return detail

    @track_operation("complete_sprint")
    async def complete_sprint(self, sprint_id: str) -> SprintDetail:
        """Close an ACTIVE sprint.

        Velocity is the sum of points of the attached DONE stories at this
        moment. Every attached story that is not DONE goes back to the
        backlog. Both writes share one transaction.
        """
        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)
            if not sprint.status.can_transition_to(SprintStatus.COMPLETED):
                raise ValidationError("Only active sprints can be completed")

            attached = await uow.stories.find_many(sprint_id=sprint_id)
            velocity = completed_story_points(attached)

            returned = await uow.stories.update_many(
                {"sprint_id": None},
                sprint_id=sprint_id,
                exclude_status=StoryStatus.DONE,
            )
            sprint = await uow.sprints.update(
                sprint_id, {"status": SprintStatus.COMPLETED, "velocity": velocity}
            )
            detail = await self._detail(uow, sprint)

        transitions_total.labels(transition="active_to_completed").inc()
        velocity_points.observe(velocity)
        logger.info(
            "Sprint completed: %s velocity=%d (%d unfinished stories returned to backlog)",
            sprint_id, velocity, returned,
        )
        return detail

    # ── Story Membership ──

    @track_operation("add_stories")
    async def add_stories(self, sprint_id: str, story_ids: Iterable[str]) -> SprintDetail:
        """Attach stories to a sprint. All-or-nothing: one bad id rejects the whole call."""
        requested = list(dict.fromkeys(story_ids))
        if not requested:
            raise ValidationError("At least one story ID is required")

        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)

            stories = await uow.stories.find_by_ids(requested)
            if len(stories) != len(requested):
                raise NotFoundError("One or more stories not found")

            if any(story.project_id != sprint.project_id for story in stories):
                raise ValidationError("All stories must belong to the same project as the sprint")

            await uow.stories.update_many({"sprint_id": sprint_id}, ids=requested)
            detail = await self._detail(uow, sprint)

        logger.info("Added %d stories to sprint %s", len(requested), sprint_id)
        return detail

    @track_operation("remove_story")
    async def remove_story(self, sprint_id: str, story_id: str) -> SprintDetail:
        """Return one story from the sprint to the backlog."""
        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)

            story = await uow.stories.find_by_id(story_id)
            if story is None:
                raise NotFoundError(f"Story with ID {story_id} not found")
            if story.sprint_id != sprint_id:
                raise ValidationError("Story does not belong to this sprint")

            await uow.stories.update(story_id, {"sprint_id": None})
            detail = await self._detail(uow, sprint)

        logger.info("Removed story %s from sprint %s", story_id, sprint_id)
        return detail

    # ── Metrics ──

    @track_operation("get_metrics")
    async def get_metrics(self, sprint_id: str) -> SprintMetrics:
        async with self._store.transaction() as uow:
            sprint = await self._require_sprint(uow, sprint_id)
            stories = await uow.stories.find_many(sprint_id=sprint_id)
        return calculate_metrics(sprint, stories)

    # ── Comments ──

    @track_operation("add_comment")
    async def add_comment(
        self, sprint_id: str, request: CreateSprintCommentRequest, author_id: str
    ) -> SprintComment:
        async with self._store.transaction() as uow:
            await self._require_sprint(uow, sprint_id)
            comment = await uow.comments.create({
                "content": request.content,
                "type": request.type,
                "sprint_id": sprint_id,
                "author_id": author_id,
            })
        logger.debug("Comment %s added to sprint %s by %s", comment.id, sprint_id, author_id)
        return comment

    @track_operation("get_comments")
    async def get_comments(self, sprint_id: str) -> list[SprintComment]:
        """Comments of a sprint, newest first."""
        async with self._store.transaction() as uow:
            await self._require_sprint(uow, sprint_id)
            return await uow.comments.find_many(sprint_id)
