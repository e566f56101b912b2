"""Session-free approve/reject pages reached from notification emails.

The signed token in the link is the only credential. GET renders the
confirmation form and never writes; POST applies the decision. Every outcome,
including failures, is an HTML page because the client is a browser opened
from a mail client.
"""
import logging
from datetime import date
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Form, HTTPException, Path, Query, Request
from fastapi.responses import HTMLResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.core.security import QuickActionTokenError, QuickActionTokenExpired, verify_quick_action_token
from app.db.mongo import get_mongo_db
from app.schemas.common import LeaveStatus
from app.schemas.leave_schema import LeaveDecisionIn
from app.services import leave_service
from app.services.notifier import EmailNotifier, get_notifier
from app.utils.templating import render_template


logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/leaves", tags=["quick-action"])

ACTIONS = {LeaveStatus.approved.value, LeaveStatus.rejected.value}


def _page(template: str, context: dict, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(render_template(f"quick_action/{template}", context), status_code=status_code)


def _error_page(status_code: int, title: str, message: str) -> HTMLResponse:
    return _page("error.html", {"title": title, "message": message}, status_code)


def _token_failure(exc: QuickActionTokenError) -> HTMLResponse:
    # Nothing about the underlying request is disclosed here
    if isinstance(exc, QuickActionTokenExpired):
        return _error_page(
            403,
            "This link has expired",
            "Approval links are valid for a limited time. Sign in to the system to act on this request.",
        )
    return _error_page(403, "Invalid or expired link", "This link is not valid.")


def _parse_form_date(value: Optional[str]) -> Optional[date]:
    if value is None or not value.strip():
        return None
    return date.fromisoformat(value.strip())


@router.get("/{leave_id}/quick-action", response_class=HTMLResponse)
async def quick_action_form(
    request: Request,
    leave_id: str = Path(...),
    action: str = Query(""),
    token: str = Query(""),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    try:
        verify_quick_action_token(token, leave_id)
    except QuickActionTokenError as exc:
        return _token_failure(exc)
    if action not in ACTIONS:
        return _error_page(400, "An error occurred", "Unknown action.")
    try:
        doc = await db["leave_requests"].find_one({"_id": ObjectId(leave_id)})
        requester = await db["users"].find_one({"_id": doc["requester_id"]}) if doc else None
    except PyMongoError:
        logger.exception("Quick-action form lookup failed for leave %s", leave_id)
        return _error_page(503, "An error occurred", "The service is temporarily unavailable. Please try again.")
    if not doc:
        return _error_page(404, "An error occurred", "Leave request not found.")
    leave = leave_service.serialize_leave(doc)
    return _page("form.html", {
        "action": action,
        "verb": "Approve" if action == LeaveStatus.approved.value else "Reject",
        "approving": action == LeaveStatus.approved.value,
        "token": token,
        "leave": leave,
        "requester": requester or {},
        "form_action": str(request.url_for("quick_action_submit", leave_id=leave_id)),
    })


@router.post("/{leave_id}/quick-action", response_class=HTMLResponse)
async def quick_action_submit(
    leave_id: str = Path(...),
    action: str = Form(""),
    token: str = Form(""),
    remarks: Optional[str] = Form(None),
    start_date: Optional[str] = Form(None),
    end_date: Optional[str] = Form(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifier: EmailNotifier = Depends(get_notifier),
):
    try:
        verify_quick_action_token(token, leave_id)
    except QuickActionTokenError as exc:
        return _token_failure(exc)
    if action not in ACTIONS:
        return _error_page(400, "An error occurred", "Unknown action.")
    try:
        decision = LeaveDecisionIn(
            status=action,
            remarks=remarks,
            start_date=_parse_form_date(start_date),
            end_date=_parse_form_date(end_date),
        )
    except ValueError:
        return _error_page(400, "An error occurred", "Dates must be in YYYY-MM-DD format.")
    try:
        approver = await leave_service.resolve_default_approver(db)
        leave = await leave_service.decide_leave(db, notifier, approver, leave_id, decision)
    except HTTPException as exc:
        return _error_page(exc.status_code, "Unable to complete this action", str(exc.detail))
    except PyMongoError:
        logger.exception("Quick-action decision failed for leave %s", leave_id)
        return _error_page(503, "An error occurred", "The service is temporarily unavailable. Please try again.")
    return _page("result.html", {
        "action": action,
        "verb": "Approved" if action == LeaveStatus.approved.value else "Rejected",
        "leave": leave,
    })
