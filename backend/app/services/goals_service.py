import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.errors import GoalHasProgress, GoalLocked, GoalNotFound, ParentGoalNotFound, storage_errors
from app.models.goal import Goal, GoalProgress, GoalStatus
from app.schemas.goal import GoalComputed, GoalItem, GoalPage, HistoryComputed, HistoryItem
from app.services.iteration_chain import resolve_chain, validate_for_new_iteration
from app.services.progress_aggregator import GoalMetrics, compute_metrics, sum_progress

logger = logging.getLogger(__name__)

LOCKED_FIELDS = ("name", "target_value", "deadline")


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def get_owned_goal(db: AsyncSession, user_id: str, goal_id: str) -> Goal:
    with storage_errors("fetching goal"):
        result = await db.execute(select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id))
        goal = result.scalar_one_or_none()
    if goal is None:
        raise GoalNotFound(details={"goal_id": goal_id})
    return goal


async def count_progress(db: AsyncSession, goal_id: str) -> int:
    with storage_errors("counting progress entries"):
        result = await db.execute(
            select(func.count()).select_from(GoalProgress).where(GoalProgress.goal_id == goal_id)
        )
        return result.scalar_one()


async def load_progress_values(db: AsyncSession, goal_ids: Iterable[str]) -> Dict[str, List[Decimal]]:
    """Progress values grouped by goal id; goals without entries map to an empty list."""
    goal_ids = list(goal_ids)
    values: Dict[str, List[Decimal]] = defaultdict(list)
    if not goal_ids:
        return values
    with storage_errors("fetching progress values"):
        result = await db.execute(
            select(GoalProgress.goal_id, GoalProgress.value).where(GoalProgress.goal_id.in_(goal_ids))
        )
        for goal_id, value in result.all():
            values[goal_id].append(value)
    return values


def to_goal_item(goal: Goal, metrics: GoalMetrics, with_count: bool = False) -> GoalItem:
    item = GoalItem.model_validate(goal)
    item.computed = GoalComputed(
        current_value=metrics.current_value,
        progress_ratio=metrics.progress_ratio,
        progress_percent=metrics.progress_percent,
        is_locked=metrics.is_locked,
        days_remaining=metrics.days_remaining,
        entries_count=metrics.entries_count if with_count else None,
    )
    return item


async def create_goal(
    db: AsyncSession,
    user_id: str,
    name: str,
    target_value: Decimal,
    deadline: date,
    parent_goal_id: Optional[str] = None,
) -> Goal:
    if parent_goal_id is not None:
        with storage_errors("checking parent goal"):
            result = await db.execute(
                select(Goal.id).where(Goal.id == parent_goal_id, Goal.user_id == user_id)
            )
            parent_exists = result.scalar_one_or_none() is not None
        if not parent_exists:
            raise ParentGoalNotFound(details={"parent_goal_id": parent_goal_id})
        await validate_for_new_iteration(db, user_id, parent_goal_id)

    goal = Goal(
        user_id=user_id,
        parent_goal_id=parent_goal_id,
        name=name,
        target_value=target_value,
        deadline=deadline,
        status=GoalStatus.active,
    )
    with storage_errors("creating goal"):
        db.add(goal)
        await db.commit()
        await db.refresh(goal)
    logger.info(f"Goal {goal.id} created for user {user_id}")
    return goal


async def list_goals(
    db: AsyncSession,
    user_id: str,
    status: Optional[GoalStatus] = None,
    q: Optional[str] = None,
    parent_goal_id: Optional[str] = None,
    root: bool = False,
    sort: str = "created_at",
    order: str = "desc",
    page: int = 1,
    page_size: Optional[int] = None,
    today: Optional[date] = None,
) -> GoalPage:
    page_size = min(page_size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    today = today or date.today()

    filters = [Goal.user_id == user_id]
    if status is not None:
        filters.append(Goal.status == status)
    if q:
        filters.append(Goal.name.ilike(f"%{_escape_like(q)}%", escape="\\"))
    if parent_goal_id:
        filters.append(Goal.parent_goal_id == parent_goal_id)
    if root:
        filters.append(Goal.parent_goal_id.is_(None))

    sort_column = Goal.deadline if sort == "deadline" else Goal.created_at
    ordering = sort_column.asc() if order == "asc" else sort_column.desc()

    with storage_errors("listing goals"):
        total = (await db.execute(select(func.count()).select_from(Goal).where(*filters))).scalar_one()
        result = await db.execute(
            select(Goal)
            .where(*filters)
            .order_by(ordering, Goal.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        goals = result.scalars().all()

    values = await load_progress_values(db, [g.id for g in goals])
    items = [to_goal_item(g, compute_metrics(g.target_value, g.deadline, values[g.id], today)) for g in goals]
    return GoalPage(items=items, page=page, page_size=page_size, total=total)


async def get_goal_details(db: AsyncSession, user_id: str, goal_id: str, today: Optional[date] = None) -> GoalItem:
    goal = await get_owned_goal(db, user_id, goal_id)
    values = await load_progress_values(db, [goal.id])
    metrics = compute_metrics(goal.target_value, goal.deadline, values[goal.id], today or date.today())
    return to_goal_item(goal, metrics, with_count=True)


async def update_goal(db: AsyncSession, user_id: str, goal_id: str, changes: dict) -> Goal:
    """Apply ``changes``; name, target and deadline are frozen once progress exists."""
    goal = await get_owned_goal(db, user_id, goal_id)

    locked_changes = [f for f in LOCKED_FIELDS if f in changes]
    if locked_changes and await count_progress(db, goal_id) >= 1:
        raise GoalLocked(details={"fields": locked_changes})

    for field, value in changes.items():
        setattr(goal, field, value)

    with storage_errors("updating goal"):
        await db.commit()
        await db.refresh(goal)
    return goal


async def delete_goal(db: AsyncSession, user_id: str, goal_id: str):
    goal = await get_owned_goal(db, user_id, goal_id)

    if await count_progress(db, goal.id) >= 1:
        raise GoalHasProgress()

    with storage_errors("deleting goal"):
        await db.execute(delete(Goal).where(Goal.id == goal.id, Goal.user_id == user_id))
        await db.commit()
    logger.info(f"Goal {goal_id} deleted by user {user_id}")


async def get_goal_history(db: AsyncSession, user_id: str, goal_id: str, order: str = "asc") -> List[HistoryItem]:
    chain = await resolve_chain(db, user_id, goal_id)
    values = await load_progress_values(db, [g.id for g in chain])
    if order == "desc":
        chain = list(reversed(chain))
    return [
        HistoryItem(
            id=g.id,
            parent_goal_id=g.parent_goal_id,
            name=g.name,
            status=g.status,
            target_value=g.target_value,
            deadline=g.deadline,
            created_at=g.created_at,
            updated_at=g.updated_at,
            ai_summary=g.ai_summary,
            computed=HistoryComputed(current_value=sum_progress(values[g.id])),
        )
        for g in chain
    ]
