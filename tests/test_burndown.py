"""Tests for sprint metrics aggregation and the burndown projection."""

from __future__ import annotations

from datetime import date

import pytest

from sprint_engine.exceptions import NotFoundError
from sprint_engine.models.schemas import StoryStatus
from sprint_engine.sprints.burndown import generate_burndown, round_half_up


class TestGenerateBurndown:
    def test_two_week_sprint_has_fifteen_days(self):
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 15), 10)

        assert len(points) == 15
        assert points[0].date == "2025-11-01"
        assert points[-1].date == "2025-11-15"
        assert points[0].ideal_remaining == 10
        assert points[-1].ideal_remaining == 0

    def test_ideal_line_is_non_increasing(self):
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 15), 10)
        ideal = [p.ideal_remaining for p in points]
        assert ideal == sorted(ideal, reverse=True)

    def test_ideal_values_round_half_up(self):
        # 10 points over 4 days: 10, 7.5, 5, 2.5, 0
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 5), 10)
        assert [p.ideal_remaining for p in points] == [10, 8, 5, 3, 0]

    def test_remaining_points_repeat_the_total(self):
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 8), 21)
        assert {p.remaining_points for p in points} == {21}

    def test_zero_points_is_flat(self):
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 3), 0)
        assert [p.ideal_remaining for p in points] == [0, 0, 0]

    def test_crosses_month_boundary(self):
        points = generate_burndown(date(2025, 1, 30), date(2025, 2, 2), 6)
        assert [p.date for p in points] == ["2025-01-30", "2025-01-31", "2025-02-01", "2025-02-02"]

    def test_degenerate_range_yields_single_point(self):
        points = generate_burndown(date(2025, 11, 1), date(2025, 11, 1), 7)
        assert len(points) == 1
        assert points[0].ideal_remaining == 7


class TestRounding:
    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(66.665, 2) == pytest.approx(66.67)

    def test_below_half_rounds_down(self):
        assert round_half_up(2.4) == 2


class TestSprintMetrics:
    @pytest.mark.asyncio
    async def test_empty_sprint(self, service, sprint_request):
        sprint = await service.create(sprint_request())
        metrics = await service.get_metrics(sprint.id)

        assert metrics.total_story_points == 0
        assert metrics.completion_percentage == 0
        assert metrics.stories_count.total == 0
        assert len(metrics.burndown_data) == 15
        assert metrics.velocity is None
        assert metrics.capacity == 40

    @pytest.mark.asyncio
    async def test_aggregates_by_status(self, service, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        stories = [
            make_story(points=5, status=StoryStatus.DONE),
            make_story(points=3, status=StoryStatus.IN_PROGRESS),
            make_story(points=None, status=StoryStatus.TODO),
            make_story(points=1, status=StoryStatus.BLOCKED),
        ]
        await service.add_stories(sprint.id, [s.id for s in stories])

        metrics = await service.get_metrics(sprint.id)

        assert metrics.total_story_points == 9
        assert metrics.completed_story_points == 5
        assert metrics.remaining_story_points == 4
        assert metrics.completion_percentage == 55.56
        assert metrics.stories_count.model_dump() == {
            "total": 4, "todo": 1, "in_progress": 1, "done": 1, "blocked": 1,
        }
        assert metrics.burndown_data[0].ideal_remaining == 9

    @pytest.mark.asyncio
    async def test_single_ten_point_story(self, service, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        story = make_story(points=10)
        await service.add_stories(sprint.id, [story.id])

        metrics = await service.get_metrics(sprint.id)

        assert len(metrics.burndown_data) == 15
        assert metrics.burndown_data[0].ideal_remaining == 10
        assert metrics.burndown_data[14].ideal_remaining == 0

    @pytest.mark.asyncio
    async def test_completed_sprint_reports_velocity(self, service, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        done = make_story(points=8, status=StoryStatus.DONE)
        await service.add_stories(sprint.id, [done.id])
        await service.start_sprint(sprint.id)
        await service.complete_sprint(sprint.id)

        metrics = await service.get_metrics(sprint.id)

        assert metrics.velocity == 8
        assert metrics.completion_percentage == 100

    @pytest.mark.asyncio
    async def test_missing_sprint_raises(self, service):
        with pytest.raises(NotFoundError):
            await service.get_metrics("nope")
