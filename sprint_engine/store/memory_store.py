"""In-process sprint store.

Used for local development (SPRINT_STORE_BACKEND=memory) and by the test
suite. Transactions are serialized by a single asyncio.Lock, which makes
every check-then-write in the engine atomic. A failing transaction restores
the snapshot taken when it began. The same integrity rules the PostgreSQL
schema declares are enforced on every sprint write.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from sprint_engine.exceptions import ConflictError, NotFoundError, ValidationError
from sprint_engine.models.schemas import (
    Sprint,
    SprintComment,
    SprintStatus,
    Story,
    StoryStatus,
    utcnow,
)
from sprint_engine.sprints.overlap import intervals_overlap

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class _Tables:
    """Plain dicts keyed by id. Records are immutable models, replaced on write."""

    def __init__(self) -> None:
        self.sprints: dict[str, Sprint] = {}
        self.stories: dict[str, Story] = {}
        self.comments: dict[str, SprintComment] = {}

    def snapshot(self) -> tuple[dict, dict, dict]:
        return dict(self.sprints), dict(self.stories), dict(self.comments)

    def restore(self, snapshot: tuple[dict, dict, dict]) -> None:
        self.sprints, self.stories, self.comments = snapshot


# ── Repositories ──


class MemorySprintRepository:
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def create(self, values: dict[str, Any]) -> Sprint:
        now = utcnow()
        sprint = Sprint(id=_new_id(), created_at=now, updated_at=now, **values)
        self._check_integrity(sprint)
        self._t.sprints[sprint.id] = sprint
        return sprint

    async def find_by_id(self, sprint_id: str) -> Sprint | None:
        return self._t.sprints.get(sprint_id)

    async def find_many(
        self,
        *,
        project_id: str | None = None,
        statuses: Iterable[SprintStatus] | None = None,
        exclude_id: str | None = None,
    ) -> list[Sprint]:
        wanted = set(statuses) if statuses is not None else None
        return [
            s for s in self._t.sprints.values()
            if (project_id is None or s.project_id == project_id)
            and (wanted is None or s.status in wanted)
            and s.id != exclude_id
        ]

    async def update(self, sprint_id: str, values: dict[str, Any]) -> Sprint:
        current = self._t.sprints.get(sprint_id)
        if current is None:
            raise NotFoundError(f"Sprint with ID {sprint_id} not found")
        updated = current.model_copy(update={**values, "updated_at": utcnow()})
        self._check_integrity(updated)
        self._t.sprints[sprint_id] = updated
        return updated

    async def delete(self, sprint_id: str) -> Sprint:
        sprint = self._t.sprints.pop(sprint_id, None)
        if sprint is None:
            raise NotFoundError(f"Sprint with ID {sprint_id} not found")
        # Mirrors ON DELETE SET NULL / ON DELETE CASCADE in the SQL schema
        for story in list(self._t.stories.values()):
            if story.sprint_id == sprint_id:
                self._t.stories[story.id] = story.model_copy(update={"sprint_id": None})
        for comment in list(self._t.comments.values()):
            if comment.sprint_id == sprint_id:
                del self._t.comments[comment.id]
        return sprint

    def _check_integrity(self, sprint: Sprint) -> None:
        if sprint.start_date >= sprint.end_date:
            raise ValidationError("End date must be after start date")
        if (sprint.velocity is None) != (sprint.status != SprintStatus.COMPLETED):
            raise ValidationError("Velocity is recorded exactly when a sprint is completed")
        if not sprint.status.is_open:
            return
        for other in self._t.sprints.values():
            if other.id == sprint.id or other.project_id != sprint.project_id or not other.status.is_open:
                continue
            if sprint.status == SprintStatus.ACTIVE and other.status == SprintStatus.ACTIVE:
                raise ConflictError("Cannot start sprint: Another sprint is already active in this project")
            if intervals_overlap(sprint.start_date, sprint.end_date, other.start_date, other.end_date):
                raise ConflictError("Sprint dates overlap with existing active or planning sprint")


class MemoryStoryRepository:
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def find_by_id(self, story_id: str) -> Story | None:
        return self._t.stories.get(story_id)

    async def find_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        return [self._t.stories[i] for i in dict.fromkeys(story_ids) if i in self._t.stories]

    async def find_many(
        self,
        *,
        sprint_id: str | None = None,
        sprint_ids: Iterable[str] | None = None,
        project_id: str | None = None,
    ) -> list[Story]:
        wanted = set(sprint_ids) if sprint_ids is not None else None
        return [
            s for s in self._t.stories.values()
            if (sprint_id is None or s.sprint_id == sprint_id)
            and (wanted is None or s.sprint_id in wanted)
            and (project_id is None or s.project_id == project_id)
        ]

    async def update(self, story_id: str, values: dict[str, Any]) -> Story:
        current = self._t.stories.get(story_id)
        if current is None:
            raise NotFoundError(f"Story with ID {story_id} not found")
        updated = current.model_copy(update=values)
        self._check_sprint_reference(updated)
        self._t.stories[story_id] = updated
        return updated

    async def update_many(
        self,
        values: dict[str, Any],
        *,
        ids: Iterable[str] | None = None,
        sprint_id: str | None = None,
        exclude_status: StoryStatus | None = None,
    ) -> int:
        id_filter = set(ids) if ids is not None else None
        changed = 0
        for story in list(self._t.stories.values()):
            if id_filter is not None and story.id not in id_filter:
                continue
            if sprint_id is not None and story.sprint_id != sprint_id:
                continue
            if exclude_status is not None and story.status == exclude_status:
                continue
            updated = story.model_copy(update=values)
            self._check_sprint_reference(updated)
            self._t.stories[story.id] = updated
            changed += 1
        return changed

    def _check_sprint_reference(self, story: Story) -> None:
        if story.sprint_id is not None and story.sprint_id not in self._t.sprints:
            raise ConflictError(f"Story {story.id} references missing sprint {story.sprint_id}")


class MemoryCommentRepository:
    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    async def create(self, values: dict[str, Any]) -> SprintComment:
        if values.get("sprint_id") not in self._t.sprints:
            raise ConflictError(f"Comment references missing sprint {values.get('sprint_id')}")
        comment = SprintComment(id=_new_id(), created_at=utcnow(), **values)
        self._t.comments[comment.id] = comment
        return comment

    async def find_many(self, sprint_id: str) -> list[SprintComment]:
        return await self.find_for_sprints([sprint_id])

    async def find_for_sprints(self, sprint_ids: Iterable[str]) -> list[SprintComment]:
        wanted = set(sprint_ids)
        # Reverse insertion order first so equal timestamps still list newest first
        comments = [c for c in reversed(list(self._t.comments.values())) if c.sprint_id in wanted]
        return sorted(comments, key=lambda c: c.created_at, reverse=True)

    async def delete_many(self, sprint_id: str) -> int:
        doomed = [cid for cid, c in self._t.comments.items() if c.sprint_id == sprint_id]
        for cid in doomed:
            del self._t.comments[cid]
        return len(doomed)


class MemoryUnitOfWork:
    def __init__(self, tables: _Tables) -> None:
        self.sprints = MemorySprintRepository(tables)
        self.stories = MemoryStoryRepository(tables)
        self.comments = MemoryCommentRepository(tables)


# ── Store Class ──


class MemoryStore:
    """Sprint store held in process memory."""

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryUnitOfWork]:
        async with self._lock:
            snapshot = self._tables.snapshot()
            try:
                yield MemoryUnitOfWork(self._tables)
            except BaseException:
                self._tables.restore(snapshot)
                logger.debug("Memory transaction rolled back")
                raise

    def put_story(self, story: Story) -> Story:
        """Insert or replace a story record; stories are owned outside the engine."""
        self._tables.stories[story.id] = story
        return story

    def get_story(self, story_id: str) -> Story | None:
        return self._tables.stories.get(story_id)

    async def init_db(self) -> None:
        logger.info("In-memory sprint store initialized")

    async def disconnect(self) -> None:
        logger.info("In-memory sprint store released")

    async def health_check(self) -> bool:
        return True
