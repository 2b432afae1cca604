"""Shared test fixtures for the sprint engine test suite."""

from __future__ import annotations

import itertools
from datetime import date
from typing import Any, Callable

import pytest

from sprint_engine.models.schemas import CreateSprintRequest, Story, StoryStatus
from sprint_engine.sprints.service import SprintService
from sprint_engine.store.memory_store import MemoryStore

_story_ids = itertools.count(1)


@pytest.fixture
def store() -> MemoryStore:
    """A fresh in-memory store per test."""
    return MemoryStore()


@pytest.fixture
def service(store: MemoryStore) -> SprintService:
    return SprintService(store)


@pytest.fixture
def sprint_request() -> Callable[..., CreateSprintRequest]:
    """Factory for create requests; defaults to a two-week sprint of project-1."""

    def _make(**overrides: Any) -> CreateSprintRequest:
        fields = {
            "name": "Sprint 1",
            "goal": "Complete user authentication",
            "start_date": date(2025, 11, 1),
            "end_date": date(2025, 11, 15),
            "capacity": 40,
            "project_id": "project-1",
        }
        fields.update(overrides)
        return CreateSprintRequest(**fields)

    return _make


@pytest.fixture
def make_story(store: MemoryStore) -> Callable[..., Story]:
    """Seed a backlog story directly into the store (stories are owned outside the engine)."""

    def _make(
        points: int | None = 5,
        status: StoryStatus = StoryStatus.TODO,
        project_id: str = "project-1",
        sprint_id: str | None = None,
    ) -> Story:
        story_id = f"story-{next(_story_ids)}"
        return store.put_story(Story(
            id=story_id,
            title=f"Story {story_id}",
            project_id=project_id,
            sprint_id=sprint_id,
            status=status,
            story_points=points,
        ))

    return _make
