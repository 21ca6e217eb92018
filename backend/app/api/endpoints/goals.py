from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from app.api.deps import get_ai_client, get_current_user_id, limit_ai_generation
from app.core.database import get_db
from app.models.goal import GoalStatus
from app.schemas.goal import (
    AbandonGoalRequest, AbandonedGoal, AiSummaryOut, CompletedGoal, ContinueGoalRequest, CreateGoalRequest,
    GenerateAiSummaryRequest, GoalItem, GoalPage, GoalSort, HistoryItem, HistoryResponse, NewIteration,
    RetryGoalRequest, SortOrder, SyncStatusesRequest, SyncStatusesResponse, UpdateAiSummaryRequest,
    UpdateGoalRequest,
)
from app.services import ai_summary_service, goals_service, lifecycle_service
from app.services.ai_service import AIService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/goals", tags=["goals"])

@router.get("", response_model=GoalPage)
async def list_goals(
    status: Optional[GoalStatus] = None,
    q: Optional[str] = Query(default=None, min_length=1, max_length=200),
    parent_goal_id: Optional[str] = None,
    root: bool = False,
    sort: GoalSort = "created_at",
    order: SortOrder = "desc",
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await goals_service.list_goals(
        db, user_id, status=status, q=q.strip() if q else None, parent_goal_id=parent_goal_id,
        root=root, sort=sort, order=order, page=page, page_size=page_size,
    )

@router.post("", response_model=GoalItem, status_code=201)
async def create_goal(
    req: CreateGoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    goal = await goals_service.create_goal(
        db, user_id, req.name, req.target_value, req.deadline, parent_goal_id=req.parent_goal_id
    )
    return await goals_service.get_goal_details(db, user_id, goal.id)

# Declared before /{goal_id} routes so the literal path wins
@router.post("/sync-statuses", response_model=SyncStatusesResponse)
async def sync_statuses(
    req: Optional[SyncStatusesRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ai_client: AIService = Depends(get_ai_client),
):
    goal_ids = req.goal_ids if req else None
    updated = await lifecycle_service.sync_statuses(db, user_id, goal_ids=goal_ids, ai_client=ai_client)
    return {"updated": updated}

@router.get("/{goal_id}", response_model=GoalItem)
async def get_goal(goal_id: str, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await goals_service.get_goal_details(db, user_id, goal_id)

@router.patch("/{goal_id}", response_model=GoalItem)
async def update_goal(
    goal_id: str,
    req: UpdateGoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await goals_service.update_goal(db, user_id, goal_id, req.changes())
    return await goals_service.get_goal_details(db, user_id, goal_id)

@router.delete("/{goal_id}", status_code=204)
async def delete_goal(goal_id: str, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    await goals_service.delete_goal(db, user_id, goal_id)
    return Response(status_code=204)

@router.get("/{goal_id}/history", response_model=HistoryResponse)
async def get_goal_history(
    goal_id: str,
    order: SortOrder = "asc",
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    items: List[HistoryItem] = await goals_service.get_goal_history(db, user_id, goal_id, order=order)
    return {"items": items}

@router.post("/{goal_id}/abandon", response_model=AbandonedGoal)
async def abandon_goal(
    goal_id: str,
    req: AbandonGoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle_service.abandon_goal(db, user_id, goal_id, req.reason)

@router.post("/{goal_id}/complete", response_model=CompletedGoal)
async def complete_goal(
    goal_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ai_client: AIService = Depends(get_ai_client),
):
    return await lifecycle_service.complete_goal(db, user_id, goal_id, ai_client=ai_client)

@router.post("/{goal_id}/retry", response_model=NewIteration, status_code=201)
async def retry_goal(
    goal_id: str,
    req: RetryGoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle_service.retry_goal(
        db, user_id, goal_id, req.target_value, req.deadline, name=req.name
    )

@router.post("/{goal_id}/continue", response_model=NewIteration, status_code=201)
async def continue_goal(
    goal_id: str,
    req: ContinueGoalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle_service.continue_goal(db, user_id, goal_id, req.target_value, req.deadline, req.name)

@router.post("/{goal_id}/ai-summary/generate", response_model=AiSummaryOut)
async def generate_ai_summary(
    goal_id: str,
    req: Optional[GenerateAiSummaryRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ai_client: AIService = Depends(get_ai_client),
    _limit=Depends(limit_ai_generation),
):
    force = req.force if req else False
    return await ai_summary_service.generate_ai_summary(db, user_id, goal_id, force=force, ai_client=ai_client)

@router.patch("/{goal_id}/ai-summary", response_model=AiSummaryOut)
async def update_ai_summary(
    goal_id: str,
    req: UpdateAiSummaryRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await ai_summary_service.update_ai_summary(db, user_id, goal_id, req.ai_summary)
