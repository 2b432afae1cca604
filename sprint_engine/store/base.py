"""Store contracts consumed by the sprint engine.

The engine never talks to a database directly. It opens one transaction per
operation and works through the three repositories the unit of work exposes.
Implementations must make the whole transaction atomic and must enforce the
"one active sprint per project" and "no overlapping open sprints" rules
themselves, raising ConflictError for the losing writer.
"""

from __future__ import annotations

from typing import Any, AsyncContextManager, Iterable, Protocol

from sprint_engine.models.schemas import (
    Sprint,
    SprintComment,
    SprintStatus,
    Story,
    StoryStatus,
)


class SprintRepository(Protocol):
    async def create(self, values: dict[str, Any]) -> Sprint:
        ...

    async def find_by_id(self, sprint_id: str) -> Sprint | None:
        ...

    async def find_many(
        self,
        *,
        project_id: str | None = None,
        statuses: Iterable[SprintStatus] | None = None,
        exclude_id: str | None = None,
    ) -> list[Sprint]:
        ...

    async def update(self, sprint_id: str, values: dict[str, Any]) -> Sprint:
        ...

    async def delete(self, sprint_id: str) -> Sprint:
        ...


class StoryRepository(Protocol):
    async def find_by_id(self, story_id: str) -> Story | None:
        ...

    async def find_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        ...

    async def find_many(
        self,
        *,
        sprint_id: str | None = None,
        sprint_ids: Iterable[str] | None = None,
        project_id: str | None = None,
    ) -> list[Story]:
        ...

    async def update(self, story_id: str, values: dict[str, Any]) -> Story:
        ...

    async def update_many(
        self,
        values: dict[str, Any],
        *,
        ids: Iterable[str] | None = None,
        sprint_id: str | None = None,
        exclude_status: StoryStatus | None = None,
    ) -> int:
        ...


class CommentRepository(Protocol):
    async def create(self, values: dict[str, Any]) -> SprintComment:
        ...

    async def find_many(self, sprint_id: str) -> list[SprintComment]:
        """Comments of a sprint, newest first."""
        ...

    async def find_for_sprints(self, sprint_ids: Iterable[str]) -> list[SprintComment]:
        """Comments of several sprints in one read, newest first."""
        ...

    async def delete_many(self, sprint_id: str) -> int:
        ...


class UnitOfWork(Protocol):
    sprints: SprintRepository
    stories: StoryRepository
    comments: CommentRepository


class SprintStore(Protocol):
    def transaction(self) -> AsyncContextManager[UnitOfWork]:
        ...

    async def init_db(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def health_check(self) -> bool:
        ...
