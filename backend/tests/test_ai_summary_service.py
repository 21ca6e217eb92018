import pytest

from app.core.errors import AIProviderError, AIProviderTimeout, GoalNotFound, InvalidGoalState, NotEnoughData
from app.models.goal import GoalStatus
from app.services import ai_summary_service
from conftest import OTHER_USER_ID, USER_ID


class TestParseSummaryResponse:
    def test_plain_json(self):
        assert ai_summary_service.parse_summary_response('{"summary": "  Well done.  "}') == "Well done."

    def test_fenced_json(self):
        content = '```json\n{"summary": "Keep going."}\n```'
        assert ai_summary_service.parse_summary_response(content) == "Keep going."

    @pytest.mark.parametrize("content", ["not json at all", '{"text": "wrong key"}', '{"summary": "   "}', "[1, 2]"])
    def test_unusable_responses_are_provider_errors(self, content):
        with pytest.raises(AIProviderError):
            ai_summary_service.parse_summary_response(content)

    def test_long_summary_is_truncated(self):
        content = '{"summary": "%s"}' % ("a" * 6000)
        assert len(ai_summary_service.parse_summary_response(content)) == 5000


async def test_active_goal_has_no_summary(make_goal, db, fake_ai):
    goal = await make_goal(progress=["1", "1", "1"])
    with pytest.raises(InvalidGoalState):
        await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)


async def test_needs_three_entries(make_goal, db, fake_ai):
    goal = await make_goal(status=GoalStatus.completed_failure, progress=["1", "1"])

    with pytest.raises(NotEnoughData):
        await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)

    assert fake_ai.calls == []
    await db.refresh(goal)
    assert goal.ai_generation_attempts == 0


async def test_other_users_goal_is_not_found(make_goal, db, fake_ai):
    goal = await make_goal(user_id=OTHER_USER_ID, status=GoalStatus.abandoned, progress=["1", "1", "1"])
    with pytest.raises(GoalNotFound):
        await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)


async def test_generates_and_stores_summary(make_goal, db, fake_ai):
    goal = await make_goal(status=GoalStatus.completed_success, progress=["3", "4", "5"])

    result = await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)

    assert result.ai_summary == fake_ai.summary
    await db.refresh(goal)
    assert goal.ai_summary == fake_ai.summary
    assert goal.ai_generation_attempts == 1


async def test_existing_summary_is_returned_without_calling_provider(make_goal, db, fake_ai):
    goal = await make_goal(status=GoalStatus.abandoned, progress=["1", "1", "1"], ai_summary="Written earlier")

    result = await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)

    assert result.ai_summary == "Written earlier"
    assert fake_ai.calls == []


async def test_force_regenerates_existing_summary(make_goal, db, fake_ai):
    goal = await make_goal(status=GoalStatus.abandoned, progress=["1", "1", "1"], ai_summary="Written earlier")

    result = await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, force=True, ai_client=fake_ai)

    assert result.ai_summary == fake_ai.summary
    assert len(fake_ai.calls) == 1


@pytest.mark.parametrize("error", [AIProviderTimeout(), RuntimeError("boom")])
async def test_failed_generation_still_counts_attempt(make_goal, db, fake_ai, error):
    fake_ai.error = error
    goal = await make_goal(status=GoalStatus.completed_failure, progress=["1", "1", "1"])

    with pytest.raises((AIProviderTimeout, AIProviderError)):
        await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)

    await db.refresh(goal)
    assert goal.ai_generation_attempts == 1
    assert goal.ai_summary is None


async def test_prompt_carries_goal_and_previous_goals(make_goal, db, fake_ai):
    await make_goal(name="Read 5 books", status=GoalStatus.completed_success, progress=["5"])
    goal = await make_goal(name="Read 10 books", target="10", status=GoalStatus.completed_failure,
                           progress=["2", "2", "3"])

    await ai_summary_service.generate_ai_summary(db, USER_ID, goal.id, ai_client=fake_ai)

    system, user = fake_ai.calls[0]
    assert system["role"] == "system"
    assert '{"summary": "..."}' in system["content"]
    assert "Name: Read 10 books" in user["content"]
    assert "Not completed (deadline passed)" in user["content"]
    assert "(entry 3)" in user["content"]
    assert "## Previous goals (context)" in user["content"]
    assert "Goal 1: Read 5 books" in user["content"]


async def test_update_ai_summary_overwrites_text(make_goal, db):
    goal = await make_goal(status=GoalStatus.abandoned, ai_summary="Old")

    result = await ai_summary_service.update_ai_summary(db, USER_ID, goal.id, "Rewritten by me")

    assert result.ai_summary == "Rewritten by me"
