"""Tests for attaching stories to and detaching them from a sprint."""

from __future__ import annotations

import pytest

from sprint_engine.exceptions import NotFoundError, ValidationError


class TestAddStories:
    @pytest.mark.asyncio
    async def test_add_sets_sprint_on_every_story(self, service, store, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        a, b = make_story(), make_story()

        detail = await service.add_stories(sprint.id, [a.id, b.id])

        assert {s.id for s in detail.stories} == {a.id, b.id}
        assert store.get_story(a.id).sprint_id == sprint.id
        assert store.get_story(b.id).sprint_id == sprint.id

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_collapsed(self, service, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        a = make_story()

        detail = await service.add_stories(sprint.id, [a.id, a.id])
        assert [s.id for s in detail.stories] == [a.id]

    @pytest.mark.asyncio
    async def test_missing_sprint_raises(self, service, make_story):
        with pytest.raises(NotFoundError):
            await service.add_stories("nope", [make_story().id])

    @pytest.mark.asyncio
    async def test_empty_request_rejected(self, service, sprint_request):
        sprint = await service.create(sprint_request())
        with pytest.raises(ValidationError):
            await service.add_stories(sprint.id, [])

    @pytest.mark.asyncio
    async def test_unknown_story_rejects_whole_batch(self, service, store, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        a = make_story()

        with pytest.raises(NotFoundError, match="One or more stories not found"):
            await service.add_stories(sprint.id, [a.id, "story-missing"])

        assert store.get_story(a.id).sprint_id is None

    @pytest.mark.asyncio
    async def test_foreign_project_story_rejects_whole_batch(self, service, store, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        ours = make_story()
        theirs = make_story(project_id="project-2")

        with pytest.raises(ValidationError, match="same project"):
            await service.add_stories(sprint.id, [ours.id, theirs.id])

        assert store.get_story(ours.id).sprint_id is None
        assert store.get_story(theirs.id).sprint_id is None

    @pytest.mark.asyncio
    async def test_moving_story_between_sprints(self, service, store, sprint_request, make_story):
        from datetime import date

        first = await service.create(sprint_request())
        second = await service.create(
            sprint_request(name="Sprint 2", start_date=date(2025, 11, 16), end_date=date(2025, 11, 30))
        )
        story = make_story()
        await service.add_stories(first.id, [story.id])
        await service.add_stories(second.id, [story.id])

        assert store.get_story(story.id).sprint_id == second.id
        assert (await service.find_one(first.id)).stories == []


class TestRemoveStory:
    @pytest.mark.asyncio
    async def test_remove_returns_story_to_backlog(self, service, store, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        story = make_story()
        await service.add_stories(sprint.id, [story.id])

        detail = await service.remove_story(sprint.id, story.id)

        assert detail.stories == []
        assert store.get_story(story.id).sprint_id is None

    @pytest.mark.asyncio
    async def test_story_of_another_sprint_rejected(self, service, sprint_request, make_story):
        sprint = await service.create(sprint_request())
        story = make_story()

        with pytest.raises(ValidationError, match="does not belong to this sprint"):
            await service.remove_story(sprint.id, story.id)

    @pytest.mark.asyncio
    async def test_missing_story_raises(self, service, sprint_request):
        sprint = await service.create(sprint_request())
        with pytest.raises(NotFoundError, match="Story with ID ghost not found"):
            await service.remove_story(sprint.id, "ghost")

    @pytest.mark.asyncio
    async def test_missing_sprint_raises(self, service, make_story):
        with pytest.raises(NotFoundError):
            await service.remove_story("nope", make_story().id)
