from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id
from app.core.database import get_db
from app.schemas.goal import (
    CreateProgressRequest, ProgressCreated, ProgressItem, ProgressPage, SortOrder, UpdateProgressRequest,
)
from app.services import progress_service

router = APIRouter(tags=["progress"])

@router.get("/goals/{goal_id}/progress", response_model=ProgressPage)
async def list_progress(
    goal_id: str,
    order: SortOrder = "desc",
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await progress_service.list_progress(db, user_id, goal_id, order=order, page=page, page_size=page_size)

@router.post("/goals/{goal_id}/progress", response_model=ProgressCreated, status_code=201)
async def add_progress(
    goal_id: str,
    req: CreateProgressRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await progress_service.add_progress(db, user_id, goal_id, req.value, notes=req.notes)

@router.patch("/progress/{progress_id}", response_model=ProgressItem)
async def update_progress(
    progress_id: str,
    req: UpdateProgressRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await progress_service.update_progress(db, user_id, progress_id, req.changes())

@router.delete("/progress/{progress_id}", status_code=204)
async def delete_progress(
    progress_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await progress_service.delete_progress(db, user_id, progress_id)
    return Response(status_code=204)
