"""
Iteration chains: goals linked through parent_goal_id by retry/continue.

The chain containing a goal is found in two passes: walk up the parents to
the root, then collect descendants level by level. Both passes track visited
ids and stop at MAX_CHAIN_DEPTH so a corrupted parent link can never loop.
"""
import logging
from typing import List, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.errors import ActiveGoalExists, GoalNotFound, GoalNotYoungest, storage_errors
from app.models.goal import Goal, GoalStatus

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 500


async def _get_owned_goal(db: AsyncSession, user_id: str, goal_id: str):
    result = await db.execute(select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id))
    return result.scalar_one_or_none()


async def resolve_chain(db: AsyncSession, user_id: str, goal_id: str) -> List[Goal]:
    """All goals in the chain containing ``goal_id``, oldest first."""
    with storage_errors("resolving iteration chain"):
        goal = await _get_owned_goal(db, user_id, goal_id)
        if goal is None:
            raise GoalNotFound()

        # Pass 1: ancestors
        root = goal
        seen = {goal.id}
        while root.parent_goal_id is not None and len(seen) < MAX_CHAIN_DEPTH:
            if root.parent_goal_id in seen:
                logger.error(f"Cycle in iteration chain at goal {root.id}")
                break
            parent = await _get_owned_goal(db, user_id, root.parent_goal_id)
            if parent is None:
                break
            seen.add(parent.id)
            root = parent

        # Pass 2: descendants of the root
        members = {root.id: root}
        frontier = [root.id]
        depth = 0
        while frontier and depth < MAX_CHAIN_DEPTH:
            result = await db.execute(
                select(Goal).where(Goal.user_id == user_id, Goal.parent_goal_id.in_(frontier))
            )
            frontier = []
            for child in result.scalars().all():
                if child.id in members:
                    continue
                members[child.id] = child
                frontier.append(child.id)
            depth += 1

    return sorted(members.values(), key=lambda g: g.created_at)


def assert_can_spawn_iteration(chain: Sequence[Goal], goal_id: str):
    """Raise unless ``goal_id`` may start a new iteration of ``chain``."""
    if any(g.status == GoalStatus.active for g in chain):
        raise ActiveGoalExists()

    if not chain:
        return

    youngest = max(chain, key=lambda g: g.created_at)
    if youngest.id != goal_id:
        raise GoalNotYoungest(details={"youngest_goal_id": youngest.id})


async def validate_for_new_iteration(db: AsyncSession, user_id: str, goal_id: str):
    chain = await resolve_chain(db, user_id, goal_id)
    assert_can_spawn_iteration(chain, goal_id)
