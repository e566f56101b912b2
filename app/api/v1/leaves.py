from typing import Optional
from datetime import date
from fastapi import APIRouter, Depends, Query, Path, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.mongo import get_mongo_db
from app.core.security import CallerContext, get_current_user
from app.schemas.leave_schema import (
    LeaveIn,
    LeaveOut,
    LeaveDecisionIn,
    LeaveListOut,
    LeaveUpdate,
)
from app.services import leave_service
from app.services.notifier import EmailNotifier, get_notifier

router = APIRouter(prefix="/leaves", tags=["leaves"])


@router.get("", response_model=LeaveListOut)
async def list_leaves(
    user_id: Optional[str] = Query(None, description="Approvers only; ignored for plain users"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    status_: Optional[list[str]] = Query(None, alias="status"),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    items = await leave_service.list_leaves(
        db,
        current_user,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        statuses=status_,
    )
    return {"items": items, "total": len(items)}


@router.get("/{leave_id}", response_model=LeaveOut)
async def get_leave(
    leave_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    return await leave_service.get_leave(db, current_user, leave_id)


@router.post("", response_model=LeaveOut, status_code=status.HTTP_201_CREATED)
async def create_leave(
    payload: LeaveIn,
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifier: EmailNotifier = Depends(get_notifier),
    current_user: CallerContext = Depends(get_current_user),
):
    return await leave_service.submit_leave(db, notifier, current_user, payload)


@router.put("/{leave_id}", response_model=LeaveOut)
async def update_leave(
    payload: LeaveUpdate,
    leave_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    return await leave_service.edit_leave(db, current_user, leave_id, payload)


@router.patch("/{leave_id}/status", response_model=LeaveOut)
async def decide_leave(
    payload: LeaveDecisionIn,
    leave_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifier: EmailNotifier = Depends(get_notifier),
    current_user: CallerContext = Depends(get_current_user),
):
    return await leave_service.decide_leave(db, notifier, current_user, leave_id, payload)


@router.post("/{leave_id}/withdraw", response_model=LeaveOut)
async def withdraw_leave(
    leave_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    return await leave_service.withdraw_leave(db, current_user, leave_id)


@router.delete("/{leave_id}")
async def delete_leave(
    leave_id: str = Path(...),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    current_user: CallerContext = Depends(get_current_user),
):
    await leave_service.delete_leave(db, current_user, leave_id)
    return {"status": "deleted", "id": leave_id}
