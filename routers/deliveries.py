"""
Material delivery APIs (email / WhatsApp).
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from pydantic import BaseModel
from typing import List, Optional

from database.models import UserRole, AuditAction, DeliveryChannel, ErrorKind
from database.schemas import Account
from database.stores import MaterialStore, DeliveryLogStore, AuditLogStore
from auth.dependencies import (
    require_user, require_student, get_dispatcher,
    get_material_store, get_delivery_log_store, get_audit_store
)
from core.validators import validate_email, validate_indian_phone, format_indian_phone
from services.audit_service import AuditService
from services.delivery_service import DeliveryDispatcher


router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


class DeliveryRequest(BaseModel):
    """Request delivery of a material to the current student."""
    materialId: str
    deliveryMethod: DeliveryChannel
    email: Optional[str] = None
    whatsappNumber: Optional[str] = None


class DeliveryResponse(BaseModel):
    success: bool
    message: str
    errorKind: Optional[ErrorKind] = None
    log: Optional[dict] = None


class DeliveryListResponse(BaseModel):
    data: List[dict]
    total: int
    page: int
    limit: int


@router.post("", response_model=DeliveryResponse)
async def request_delivery(
    payload: DeliveryRequest,
    request: Request,
    current_account: Account = Depends(require_student),
    materials: MaterialStore = Depends(get_material_store),
    audit_store: AuditLogStore = Depends(get_audit_store),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher)
):
    """
    Deliver a material to the current student by email, WhatsApp or both.

    Channel failures are reported in the body with ``success=false``; only
    invalid input and access errors raise HTTP errors.
    Student only.
    """
    material = materials.get(payload.materialId)
    if material is not None and not material.is_visible_to(current_account):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Material is not available for your semester"
        )

    wants_email = payload.deliveryMethod in (DeliveryChannel.EMAIL, DeliveryChannel.BOTH)
    wants_whatsapp = payload.deliveryMethod in (DeliveryChannel.WHATSAPP, DeliveryChannel.BOTH)

    email = payload.email.strip() if payload.email else None
    if wants_email and email and not validate_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter a valid email address")

    whatsapp_number = payload.whatsappNumber.strip() if payload.whatsappNumber else None
    if wants_whatsapp and whatsapp_number:
        if not validate_indian_phone(whatsapp_number):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please enter a valid Indian mobile number (10 digits starting with 6-9)"
            )
        whatsapp_number = format_indian_phone(whatsapp_number)

    outcome = await dispatcher.deliver(
        payload.materialId,
        current_account.id,
        payload.deliveryMethod,
        email=email if wants_email else None,
        whatsapp_number=whatsapp_number if wants_whatsapp else None
    )

    if outcome.errorKind == ErrorKind.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.message)

    if outcome.log is not None:
        AuditService.record_from_request(
            store=audit_store,
            request=request,
            actor_id=current_account.id,
            actor_name=current_account.full_name,
            action=AuditAction.MATERIAL_DELIVERY,
            details=f"{outcome.log.materialTitle} via {payload.deliveryMethod.value}: {outcome.message}"
        )

    return DeliveryResponse(
        success=outcome.success,
        message=outcome.message,
        errorKind=outcome.errorKind,
        log=outcome.log.model_dump(mode="json") if outcome.log else None
    )


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    student_id: Optional[str] = Query(None, alias="studentId", description="Filter by student (admin)"),
    material_id: Optional[str] = Query(None, alias="materialId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=1000),
    current_account: Account = Depends(require_user),
    store: DeliveryLogStore = Depends(get_delivery_log_store),
    materials: MaterialStore = Depends(get_material_store)
):
    """
    Delivery history, newest first.
    Admins see every delivery, students their own, teachers deliveries of their materials.
    """
    if current_account.role == UserRole.STUDENT:
        logs = store.list_by_student(current_account.id)
    elif student_id:
        logs = store.list_by_student(student_id)
    else:
        logs = store.list()

    if current_account.role == UserRole.TEACHER:
        own = {m.id for m in materials.by_teacher(current_account.id)}
        logs = [log for log in logs if log.materialId in own]
    if material_id:
        logs = [log for log in logs if log.materialId == material_id]
    if status_filter:
        logs = [log for log in logs if log.status.value == status_filter.lower()]

    total = len(logs)
    offset = (page - 1) * limit
    return DeliveryListResponse(
        data=[log.model_dump(mode="json") for log in logs[offset:offset + limit]],
        total=total,
        page=page,
        limit=limit
    )
