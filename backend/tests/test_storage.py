"""
ThemeSync Backend — In-Memory Storage Tests

Theme store CRUD, list-item mutation, settings upsert, voting session and
vote persistence on MemStorage.
"""

import pytest

from themesync.errors import ItemIndexError, NotFoundError
from themesync.models import TranscriptCreate, VoteCreate, VotingSessionCreate
from themesync.storage import MemStorage, build_storage


class TestProjects:
    @pytest.mark.asyncio
    async def test_default_project_seeded(self, storage):
        project = await storage.get_project(1)
        assert project is not None
        assert project.name == "Research Analysis Project"

    @pytest.mark.asyncio
    async def test_ensure_default_project_creates_when_missing(self):
        storage = MemStorage(seed_default_project=False)
        assert await storage.get_project(1) is None

        project = await storage.ensure_default_project()

        assert project.id == 1
        assert (await storage.ensure_default_project()).id == 1
        assert await storage.get_project(2) is None

    @pytest.mark.asyncio
    async def test_update_project(self, storage):
        updated = await storage.update_project(1, {"sprint_goal": "Reduce churn"})
        assert updated.sprint_goal == "Reduce churn"
        assert await storage.update_project(99, {"name": "x"}) is None

    def test_build_storage_defaults_to_memory(self):
        assert isinstance(build_storage("memory"), MemStorage)


class TestTranscripts:
    @pytest.mark.asyncio
    async def test_create_list_delete(self, storage):
        created = await storage.create_transcript(
            TranscriptCreate(project_id=1, filename="a.txt", content="hello", file_type="txt")
        )

        assert created.id == 1
        assert [t.id for t in await storage.list_transcripts(1)] == [1]
        assert await storage.delete_transcript(created.id) is True
        assert await storage.delete_transcript(created.id) is False
        assert await storage.get_transcript(created.id) is None


class TestThemeStore:
    """Tests for theme CRUD."""

    @pytest.mark.asyncio
    async def test_list_sorted_by_position(self, make_theme, storage):
        await make_theme(title="C", position=2)
        await make_theme(title="A", position=0)
        await make_theme(title="B", position=1)

        assert [t.title for t in await storage.list_themes(1)] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_delete_does_not_renumber_positions(self, make_theme, storage):
        first = await make_theme(title="A", position=0)
        middle = await make_theme(title="B", position=1)
        last = await make_theme(title="C", position=2)

        assert await storage.delete_theme(middle.id) is True

        remaining = await storage.list_themes(1)
        assert [t.id for t in remaining] == [first.id, last.id]
        assert [t.position for t in remaining] == [0, 2]

    @pytest.mark.asyncio
    async def test_update_merges_and_touches_updated_at(self, make_theme, storage):
        theme = await make_theme(title="Old", description="keep me")

        updated = await storage.update_theme(theme.id, {"title": "New"})

        assert updated.title == "New"
        assert updated.description == "keep me"
        assert updated.created_at == theme.created_at
        assert updated.updated_at >= theme.updated_at

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, storage):
        assert await storage.update_theme(404, {"title": "x"}) is None

    @pytest.mark.asyncio
    async def test_clear_themes_scoped_to_project(self, make_theme, storage):
        await make_theme(title="A")
        await make_theme(title="B")
        await make_theme(title="Other project", project_id=2)

        assert await storage.clear_themes(1) == 2
        assert await storage.list_themes(1) == []
        assert len(await storage.list_themes(2)) == 1


class TestListItems:
    """Tests for set_list_item / remove_list_item."""

    @pytest.mark.asyncio
    async def test_set_item_changes_only_that_index(self, make_theme, storage):
        theme = await make_theme(hmw_questions=["q0", "q1", "q2"], ai_suggested_steps=["s0"])

        updated = await storage.set_list_item(theme.id, "hmw", 1, "new q1")

        assert updated.hmw_questions == ["q0", "new q1", "q2"]
        assert updated.ai_suggested_steps == ["s0"]
        assert (await storage.get_theme(theme.id)).hmw_questions == ["q0", "new q1", "q2"]

    @pytest.mark.asyncio
    async def test_remove_step(self, make_theme, storage):
        theme = await make_theme(ai_suggested_steps=["s0", "s1", "s2"])

        updated = await storage.remove_list_item(theme.id, "step", 0)

        assert updated.ai_suggested_steps == ["s1", "s2"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 2, 10])
    async def test_out_of_range_is_not_clamped(self, make_theme, storage, index):
        theme = await make_theme(hmw_questions=["q0", "q1"])

        with pytest.raises(ItemIndexError):
            await storage.set_list_item(theme.id, "hmw", index, "x")
        with pytest.raises(IndexError):
            await storage.remove_list_item(theme.id, "hmw", index)

        assert (await storage.get_theme(theme.id)).hmw_questions == ["q0", "q1"]

    @pytest.mark.asyncio
    async def test_empty_list_rejects_index_zero(self, make_theme, storage):
        theme = await make_theme()
        with pytest.raises(ItemIndexError):
            await storage.set_list_item(theme.id, "step", 0, "x")

    @pytest.mark.asyncio
    async def test_unknown_theme(self, storage):
        with pytest.raises(NotFoundError):
            await storage.set_list_item(123, "hmw", 0, "x")


class TestAnalysisSettings:
    @pytest.mark.asyncio
    async def test_upsert_is_one_record_last_write_wins(self, storage):
        assert await storage.get_analysis_settings(1) is None

        first = await storage.upsert_analysis_settings(1, {"emotions": True})
        second = await storage.upsert_analysis_settings(1, {"theme_count": "8-10"})

        assert first.id == second.id
        assert second.emotions is True
        assert second.theme_count == "8-10"
        assert second.pain_points is True


class TestVotingPersistence:
    @pytest.mark.asyncio
    async def test_end_session_is_idempotent(self, storage):
        session = await storage.create_voting_session(VotingSessionCreate(project_id=1, name="Round 1", duration=5))

        ended = await storage.end_voting_session(session.id)
        again = await storage.end_voting_session(session.id)

        assert ended.is_active is False
        assert ended.ends_at is not None
        assert again.ends_at == ended.ends_at
        assert await storage.get_active_voting_session(1) is None
        assert await storage.end_voting_session(999) is None

    @pytest.mark.asyncio
    async def test_delete_votes_matches_full_key(self, storage):
        key = VoteCreate(session_id=1, theme_id=1, item_type="hmw", item_index=0, voter_token="v1")
        await storage.create_vote(key)
        await storage.create_vote(key.model_copy(update={"item_index": 1}))
        await storage.create_vote(key.model_copy(update={"voter_token": "v2"}))

        assert await storage.find_vote(key) is not None
        assert await storage.delete_votes(key) == 1
        assert await storage.find_vote(key) is None
        assert len(await storage.list_votes(1)) == 2
