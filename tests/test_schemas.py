"""Tests for the lifecycle enum and request models."""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from sprint_engine.models.schemas import (
    AddStoriesRequest,
    CreateSprintRequest,
    SprintStatus,
    Story,
    UpdateSprintRequest,
)
from sprint_engine.sprints.overlap import intervals_overlap


class TestSprintStatus:
    @pytest.mark.parametrize(
        ("current", "target", "allowed"),
        [
            (SprintStatus.PLANNING, SprintStatus.ACTIVE, True),
            (SprintStatus.ACTIVE, SprintStatus.COMPLETED, True),
            (SprintStatus.PLANNING, SprintStatus.COMPLETED, False),
            (SprintStatus.ACTIVE, SprintStatus.PLANNING, False),
            (SprintStatus.COMPLETED, SprintStatus.ACTIVE, False),
            (SprintStatus.COMPLETED, SprintStatus.COMPLETED, False),
        ],
    )
    def test_transitions(self, current, target, allowed):
        assert current.can_transition_to(target) is allowed

    def test_open_statuses(self):
        assert SprintStatus.PLANNING.is_open
        assert SprintStatus.ACTIVE.is_open
        assert not SprintStatus.COMPLETED.is_open


class TestRequests:
    def test_create_requires_name(self):
        with pytest.raises(PydanticValidationError):
            CreateSprintRequest(
                name="", start_date=date(2025, 11, 1), end_date=date(2025, 11, 15), project_id="p"
            )

    def test_create_rejects_negative_capacity(self):
        with pytest.raises(PydanticValidationError):
            CreateSprintRequest(
                name="S", start_date=date(2025, 11, 1), end_date=date(2025, 11, 15),
                project_id="p", capacity=-1,
            )

    def test_update_forbids_lifecycle_fields(self):
        with pytest.raises(PydanticValidationError):
            UpdateSprintRequest(status="ACTIVE")
        with pytest.raises(PydanticValidationError):
            UpdateSprintRequest(velocity=10)

    def test_update_tracks_explicit_fields(self):
        request = UpdateSprintRequest(goal=None)
        assert request.model_dump(exclude_unset=True) == {"goal": None}

    def test_add_stories_requires_ids(self):
        with pytest.raises(PydanticValidationError):
            AddStoriesRequest(story_ids=[])


class TestStory:
    def test_missing_points_count_as_zero(self):
        assert Story(id="s", project_id="p").points == 0
        assert Story(id="s", project_id="p", story_points=3).points == 3


class TestIntervalsOverlap:
    def test_shared_day_overlaps(self):
        assert intervals_overlap(date(2025, 11, 1), date(2025, 11, 15), date(2025, 11, 15), date(2025, 11, 29))

    def test_adjacent_ranges_do_not(self):
        assert not intervals_overlap(date(2025, 11, 1), date(2025, 11, 15), date(2025, 11, 16), date(2025, 11, 30))

    def test_containment_overlaps(self):
        assert intervals_overlap(date(2025, 11, 1), date(2025, 11, 30), date(2025, 11, 10), date(2025, 11, 12))
