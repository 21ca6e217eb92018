import logging
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.errors import GoalNotActive, ProgressNotFound, storage_errors
from app.models.goal import Goal, GoalProgress, GoalStatus
from app.schemas.goal import (
    ProgressComputed, ProgressCreated, ProgressGoalState, ProgressItem, ProgressPage,
)
from app.services.goals_service import get_owned_goal, load_progress_values
from app.services.progress_aggregator import progress_percent, sum_progress

logger = logging.getLogger(__name__)


async def _get_owned_entry(db: AsyncSession, user_id: str, progress_id: str) -> Tuple[GoalProgress, Goal]:
    with storage_errors("fetching progress entry"):
        result = await db.execute(
            select(GoalProgress, Goal)
            .join(Goal, Goal.id == GoalProgress.goal_id)
            .where(GoalProgress.id == progress_id, Goal.user_id == user_id)
        )
        row = result.first()
    # Entries of other users are reported as missing
    if row is None:
        raise ProgressNotFound(details={"progress_id": progress_id})
    return row[0], row[1]


def _require_active(goal: Goal):
    if goal.status != GoalStatus.active:
        raise GoalNotActive(details={"goal_id": goal.id, "status": goal.status.value})


async def list_progress(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    order: str = "desc",
    page: int = 1,
    page_size: Optional[int] = None,
) -> ProgressPage:
    await get_owned_goal(db, user_id, goal_id)
    page_size = min(page_size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    ordering = GoalProgress.created_at.asc() if order == "asc" else GoalProgress.created_at.desc()

    with storage_errors("listing progress entries"):
        total = (await db.execute(
            select(func.count()).select_from(GoalProgress).where(GoalProgress.goal_id == goal_id)
        )).scalar_one()
        result = await db.execute(
            select(GoalProgress)
            .where(GoalProgress.goal_id == goal_id)
            .order_by(ordering, GoalProgress.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        entries = result.scalars().all()

    return ProgressPage(
        items=[ProgressItem.model_validate(e) for e in entries],
        page=page,
        page_size=page_size,
        total=total,
    )


async def add_progress(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    value: Decimal,
    notes: Optional[str] = None,
) -> ProgressCreated:
    goal = await get_owned_goal(db, user_id, goal_id)
    _require_active(goal)

    entry = GoalProgress(goal_id=goal.id, value=value, notes=notes)
    with storage_errors("creating progress entry"):
        db.add(entry)
        await db.commit()
        await db.refresh(entry)

    values = await load_progress_values(db, [goal.id])
    current = sum_progress(values[goal.id])
    return ProgressCreated(
        progress=ProgressItem.model_validate(entry),
        goal=ProgressGoalState(id=goal.id, status=goal.status),
        computed=ProgressComputed(
            current_value=current,
            progress_percent=progress_percent(current, Decimal(goal.target_value)),
        ),
    )


async def update_progress(db: AsyncSession, user_id: str, progress_id: str, changes: dict) -> GoalProgress:
    entry, goal = await _get_owned_entry(db, user_id, progress_id)
    _require_active(goal)

    for field, value in changes.items():
        setattr(entry, field, value)

    with storage_errors("updating progress entry"):
        await db.commit()
        await db.refresh(entry)
    return entry


async def delete_progress(db: AsyncSession, user_id: str, progress_id: str):
    entry, goal = await _get_owned_entry(db, user_id, progress_id)
    _require_active(goal)

    with storage_errors("deleting progress entry"):
        await db.execute(delete(GoalProgress).where(GoalProgress.id == entry.id))
        await db.commit()
