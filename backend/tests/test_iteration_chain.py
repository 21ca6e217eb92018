import pytest
from datetime import datetime
from types import SimpleNamespace

from app.core.errors import ActiveGoalExists, GoalNotFound, GoalNotYoungest
from app.models.goal import GoalStatus
from app.services.iteration_chain import assert_can_spawn_iteration, resolve_chain, validate_for_new_iteration
from conftest import OTHER_USER_ID, USER_ID


def _member(goal_id, status, hour):
    return SimpleNamespace(id=goal_id, status=status, created_at=datetime(2026, 1, 1, hour))


class TestAssertCanSpawnIteration:
    def test_youngest_finished_goal_passes(self):
        chain = [_member("a", GoalStatus.abandoned, 1), _member("b", GoalStatus.completed_failure, 2)]
        assert_can_spawn_iteration(chain, "b")

    def test_active_member_blocks_any_caller(self):
        chain = [_member("a", GoalStatus.abandoned, 1), _member("b", GoalStatus.active, 2)]
        for goal_id in ("a", "b"):
            with pytest.raises(ActiveGoalExists):
                assert_can_spawn_iteration(chain, goal_id)

    def test_older_member_is_rejected(self):
        chain = [_member("a", GoalStatus.completed_success, 1), _member("b", GoalStatus.abandoned, 2)]
        with pytest.raises(GoalNotYoungest):
            assert_can_spawn_iteration(chain, "a")

    def test_youngest_is_by_creation_time_not_position(self):
        chain = [_member("b", GoalStatus.abandoned, 5), _member("a", GoalStatus.abandoned, 1)]
        assert_can_spawn_iteration(chain, "b")


async def test_resolve_chain_collects_ancestors_and_descendants(make_goal, db):
    root = await make_goal(status=GoalStatus.completed_failure)
    second = await make_goal(status=GoalStatus.abandoned, parent=root)
    third = await make_goal(status=GoalStatus.completed_success, parent=second)
    await make_goal(name="Unrelated")

    for member in (root, second, third):
        chain = await resolve_chain(db, USER_ID, member.id)
        assert [g.id for g in chain] == [root.id, second.id, third.id]


async def test_resolve_chain_is_scoped_to_owner(make_goal, db):
    goal = await make_goal(user_id=OTHER_USER_ID)
    with pytest.raises(GoalNotFound):
        await resolve_chain(db, USER_ID, goal.id)


async def test_resolve_chain_stops_on_cycle(make_goal, db):
    a = await make_goal(status=GoalStatus.abandoned)
    b = await make_goal(status=GoalStatus.abandoned, parent=a)
    a.parent_goal_id = b.id
    await db.commit()

    chain = await resolve_chain(db, USER_ID, a.id)
    assert {g.id for g in chain} == {a.id, b.id}


async def test_validate_for_new_iteration_on_branching_chain(make_goal, db):
    root = await make_goal(status=GoalStatus.completed_failure)
    await make_goal(status=GoalStatus.abandoned, parent=root)
    latest = await make_goal(status=GoalStatus.completed_failure, parent=root)

    await validate_for_new_iteration(db, USER_ID, latest.id)
    with pytest.raises(GoalNotYoungest):
        await validate_for_new_iteration(db, USER_ID, root.id)
