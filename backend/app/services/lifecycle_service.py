"""
Goal lifecycle: abandon, complete, retry, continue and the status sync pass.

Each operation loads what it needs, validates, then commits once, so a
failure leaves the goal untouched. AI summary generation after a goal
finishes is best effort: try_generate_ai_summary logs its failures and
never lets them reach the caller of the lifecycle operation.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.errors import (
    GoalNotActive, GoalNotContinuable, GoalNotRetryable, TargetNotReached, ValidationFailed, storage_errors,
)
from app.models.goal import Goal, GoalStatus
from app.services.ai_service import AIService
from app.services.ai_summary_service import generate_ai_summary
from app.services.goals_service import count_progress, get_owned_goal, load_progress_values
from app.services.iteration_chain import validate_for_new_iteration
from app.services.progress_aggregator import sum_progress
from app.services.status_resolver import resolve

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (GoalStatus.completed_failure, GoalStatus.abandoned)


async def abandon_goal(db: AsyncSession, user_id: str, goal_id: str, reason: str) -> Goal:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationFailed("An abandonment reason is required", {"field": "reason"})

    goal = await get_owned_goal(db, user_id, goal_id)
    if goal.status != GoalStatus.active:
        raise GoalNotActive(details={"goal_id": goal_id, "status": goal.status.value})

    goal.status = GoalStatus.abandoned
    goal.abandonment_reason = reason
    with storage_errors("abandoning goal"):
        await db.commit()
    logger.info(f"Goal {goal_id} abandoned by user {user_id}")
    return goal


async def complete_goal(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    ai_client: Optional[AIService] = None,
) -> Goal:
    goal = await get_owned_goal(db, user_id, goal_id)
    if goal.status != GoalStatus.active:
        raise GoalNotActive(details={"goal_id": goal_id, "status": goal.status.value})

    values = await load_progress_values(db, [goal.id])
    current_value = sum_progress(values[goal.id])
    if current_value < goal.target_value:
        raise TargetNotReached(details={
            "current_value": str(current_value),
            "target_value": str(goal.target_value),
        })

    goal.status = GoalStatus.completed_success
    with storage_errors("completing goal"):
        await db.commit()
    logger.info(f"Goal {goal_id} completed by user {user_id}")

    await try_generate_ai_summary(db, user_id, goal_id, ai_client=ai_client)

    with storage_errors("reloading completed goal"):
        await db.refresh(goal)
    return goal


async def _create_iteration(
    db: AsyncSession,
    user_id: str,
    source: Goal,
    name: str,
    target_value: Decimal,
    deadline: date,
) -> Goal:
    new_goal = Goal(
        user_id=user_id,
        parent_goal_id=source.id,
        name=name,
        target_value=target_value,
        deadline=deadline,
        status=GoalStatus.active,
    )
    with storage_errors("creating goal iteration"):
        db.add(new_goal)
        await db.commit()
        await db.refresh(new_goal)
    return new_goal


async def retry_goal(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    target_value: Decimal,
    deadline: date,
    name: Optional[str] = None,
) -> Goal:
    source = await get_owned_goal(db, user_id, goal_id)
    if source.status not in RETRYABLE_STATUSES:
        raise GoalNotRetryable(details={"goal_id": goal_id, "status": source.status.value})

    await validate_for_new_iteration(db, user_id, goal_id)

    new_goal = await _create_iteration(db, user_id, source, name or source.name, target_value, deadline)
    logger.info(f"Goal {goal_id} retried as {new_goal.id}")
    return new_goal


async def continue_goal(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    target_value: Decimal,
    deadline: date,
    name: str,
) -> Goal:
    if not name or not name.strip():
        raise ValidationFailed("A name is required to continue a goal", {"field": "name"})

    source = await get_owned_goal(db, user_id, goal_id)
    if source.status != GoalStatus.completed_success:
        raise GoalNotContinuable(details={"goal_id": goal_id, "status": source.status.value})

    await validate_for_new_iteration(db, user_id, goal_id)

    new_goal = await _create_iteration(db, user_id, source, name.strip(), target_value, deadline)
    logger.info(f"Goal {goal_id} continued as {new_goal.id}")
    return new_goal


async def sync_statuses(
    db: AsyncSession,
    user_id: str,
    goal_ids: Optional[List[str]] = None,
    now: Optional[datetime] = None,
    ai_client: Optional[AIService] = None,
) -> List[Dict]:
    """
    Apply automatic transitions to the user's active goals.

    Returns one ``{"id", "from", "to"}`` entry per goal whose status changed.
    Only active goals are read, so a second call without new data returns
    an empty list.
    """
    now = now or datetime.now()
    if goal_ids and len(goal_ids) > settings.SYNC_MAX_GOAL_IDS:
        raise ValidationFailed(
            f"Cannot sync more than {settings.SYNC_MAX_GOAL_IDS} goals at once",
            {"field": "goal_ids"},
        )

    query = select(Goal).where(Goal.user_id == user_id, Goal.status == GoalStatus.active)
    if goal_ids:
        query = query.where(Goal.id.in_(goal_ids))

    with storage_errors("fetching goals for sync"):
        goals = (await db.execute(query)).scalars().all()

    if not goals:
        return []

    values = await load_progress_values(db, [g.id for g in goals])

    updates = []
    for goal in goals:
        current_value = sum_progress(values[goal.id])
        new_status = resolve(goal.status, current_value, goal.target_value, goal.deadline, now)
        if new_status is not None and new_status != goal.status:
            updates.append({"id": goal.id, "from": goal.status, "to": new_status})
            goal.status = new_status

    if not updates:
        return []

    with storage_errors("saving synced statuses"):
        await db.commit()
    logger.info(f"Status sync for user {user_id}: {len(updates)} goal(s) updated")

    # One at a time to bound load on the text-generation service
    for update in updates:
        if update["to"] == GoalStatus.completed_failure:
            await try_generate_ai_summary(db, user_id, update["id"], ai_client=ai_client)

    return updates


async def try_generate_ai_summary(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    ai_client: Optional[AIService] = None,
):
    """Generate a summary if the goal qualifies; never raises."""
    logger.info(f"[AI Auto-Gen] Checking goal {goal_id}")
    try:
        goal = await get_owned_goal(db, user_id, goal_id)
        if goal.status == GoalStatus.active:
            logger.info(f"[AI Auto-Gen] Goal {goal_id} is still active, skipping")
            return
        if goal.ai_summary:
            logger.info(f"[AI Auto-Gen] Goal {goal_id} already has a summary, skipping")
            return

        count = await count_progress(db, goal_id)
        if count < settings.AI_SUMMARY_MIN_ENTRIES:
            logger.info(f"[AI Auto-Gen] Goal {goal_id} has {count} entries, skipping")
            return

        await generate_ai_summary(db, user_id, goal_id, force=False, ai_client=ai_client)
        logger.info(f"[AI Auto-Gen] Summary generated for goal {goal_id}")
    except Exception:
        logger.exception(f"[AI Auto-Gen] Failed to generate summary for goal {goal_id}")
        await db.rollback()
