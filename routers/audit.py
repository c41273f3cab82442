"""
Audit Log APIs (Admin).
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Response
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
import csv
import io
import json

from database.models import AuditAction
from database.schemas import Account, AuditEvent
from database.stores import AuditLogStore, parse_timestamp
from auth.dependencies import require_admin, get_audit_store
from services.audit_service import AuditService


router = APIRouter(prefix="/api/audit", tags=["audit"])

EXPORT_FIELDS = ["id", "timestamp", "userId", "userName", "action", "details", "ipAddress", "userAgent"]


class AuditListResponse(BaseModel):
    """Audit list response."""
    data: List[dict]
    total: int
    page: int
    limit: int


def _parse_date(value: Optional[str], label: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} date format. Use ISO 8601 format."
        )


def _filter_events(
    store: AuditLogStore,
    user: Optional[str],
    action: Optional[str],
    search: Optional[str],
    from_date: Optional[str],
    to_date: Optional[str]
) -> List[AuditEvent]:
    start = _parse_date(from_date, "from")
    end = _parse_date(to_date, "to")

    if start or end:
        events = AuditService.list_by_date_range(store, start or datetime.min, end or datetime.max)
    elif user:
        events = AuditService.list_by_actor(store, user)
    else:
        events = AuditService.list_events(store)

    if user:
        events = [e for e in events if e.userId == user]
    if action:
        events = [e for e in events if e.action == action.upper()]
    if search:
        needle = search.lower()
        events = [
            e for e in events
            if needle in e.details.lower() or needle in e.userName.lower() or needle in e.action.lower()
        ]
    return events


@router.get("", response_model=AuditListResponse)
async def list_audit_events(
    user: Optional[str] = Query(None, description="Filter by actor id"),
    action: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_account: Account = Depends(require_admin),
    store: AuditLogStore = Depends(get_audit_store)
):
    """
    List audit events, newest first. ``from`` and ``to`` are inclusive.
    Admin only.
    """
    events = _filter_events(store, user, action, search, from_date, to_date)
    total = len(events)
    offset = (page - 1) * limit
    return AuditListResponse(
        data=[e.model_dump(mode="json") for e in events[offset:offset + limit]],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/actions", response_model=List[str])
async def list_audit_actions(current_account: Account = Depends(require_admin)):
    """Known audit action tags."""
    return [action.value for action in AuditAction]


@router.get("/export")
async def export_audit_events(
    user: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    format: str = Query("csv", pattern="^(csv|json)$"),
    current_account: Account = Depends(require_admin),
    store: AuditLogStore = Depends(get_audit_store)
):
    """
    Export audit events (CSV/JSON).
    Admin only.
    """
    events = _filter_events(store, user, action, search, from_date, to_date)
    stamp = datetime.utcnow().strftime('%Y%m%d_%H%M%S')

    if format == "csv":
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(EXPORT_FIELDS)
        for event in events:
            data = event.model_dump()
            writer.writerow([data[field] if data[field] is not None else "" for field in EXPORT_FIELDS])

        csv_content = output.getvalue()
        output.close()

        return Response(
            content=csv_content,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename=audit_logs_{stamp}.csv"}
        )

    json_content = json.dumps([e.model_dump(mode="json") for e in events], indent=2)
    return Response(
        content=json_content,
        media_type="application/json",
        headers={"Content-Disposition": f"attachment; filename=audit_logs_{stamp}.json"}
    )
