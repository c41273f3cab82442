"""
User Management APIs (Admin).
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from pydantic import BaseModel, EmailStr
from typing import Optional, List

from database.models import UserRole, AuditAction
from database.schemas import Account
from database.stores import CredentialStore, AuditLogStore
from auth.dependencies import require_admin, get_credential_store, get_audit_store, get_email_sender
from core.validators import validate_indian_phone, format_indian_phone
from services.auth_service import AuthService
from services.audit_service import AuditService
from services.channels import EmailSender
from services.notification_service import send_login_credentials, send_password_reset
from core.logger import logger


router = APIRouter(prefix="/api/users", tags=["users"])


# Request/Response Models
class UserCreate(BaseModel):
    """Create user request."""
    firstName: str
    lastName: str
    email: EmailStr
    role: str
    academicYear: Optional[int] = None
    currentSemester: Optional[int] = None
    whatsappNumber: Optional[str] = None


class UserUpdate(BaseModel):
    """Update user request."""
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    academicYear: Optional[int] = None
    currentSemester: Optional[int] = None
    whatsappNumber: Optional[str] = None


class StatusUpdate(BaseModel):
    isActive: bool


class UserListResponse(BaseModel):
    """User list response."""
    data: List[dict]
    total: int
    page: int
    limit: int


class UserStatsResponse(BaseModel):
    """User stats response."""
    admin: int
    teacher: int
    student: int
    active: int
    total: int


def _parse_role(role: str) -> UserRole:
    try:
        return UserRole(role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid role: {role}"
        )


def _normalize_whatsapp(number: Optional[str]) -> Optional[str]:
    if not number:
        return number
    if not validate_indian_phone(number):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid WhatsApp number. Use a 10-digit Indian mobile number, optionally prefixed with +91"
        )
    return format_indian_phone(number)


def _get_account_or_404(store: CredentialStore, user_id: str) -> Account:
    account = store.get(user_id)
    if not account:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return account


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store)
):
    """
    Get user counts by role.
    Admin only.
    """
    return UserStatsResponse(**AuthService.get_stats(store))


@router.get("", response_model=UserListResponse)
async def list_users(
    role: Optional[str] = Query(None, description="Filter by role"),
    status_filter: Optional[str] = Query(None, alias="status", description="active or inactive"),
    search: Optional[str] = Query(None, description="Search by name, username or email"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store)
):
    """
    List users (paginated, filterable).
    Admin only.
    """
    accounts = store.list_accounts(_parse_role(role) if role else None)

    if status_filter:
        if status_filter.lower() not in ("active", "inactive"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}"
            )
        wanted = status_filter.lower() == "active"
        accounts = [a for a in accounts if a.isActive == wanted]

    if search:
        needle = search.lower()
        accounts = [
            a for a in accounts
            if needle in a.full_name.lower() or needle in a.username.lower() or needle in a.email.lower()
        ]

    total = len(accounts)
    offset = (page - 1) * limit
    return UserListResponse(
        data=[a.public_dict() for a in accounts[offset:offset + limit]],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{user_id}", response_model=dict)
async def get_user(
    user_id: str,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store)
):
    """
    Get user by ID.
    Admin only.
    """
    return _get_account_or_404(store, user_id).public_dict()


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """
    Create user (admin / teacher / student) with a generated temporary password.

    The password is emailed to the user. If the email cannot be sent it is
    returned once in this response so it can be handed over manually.
    Admin only.
    """
    role = _parse_role(user_data.role)
    try:
        account, temporary_password = AuthService.create_account(
            store,
            first_name=user_data.firstName.strip(),
            last_name=user_data.lastName.strip(),
            email=str(user_data.email),
            role=role,
            academic_year=user_data.academicYear,
            current_semester=user_data.currentSemester,
            whatsapp_number=_normalize_whatsapp(user_data.whatsappNumber)
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.USER_CREATE,
        details=f"Created user: {account.username} ({account.role.value})"
    )

    sent = await send_login_credentials(email_sender, account, temporary_password)
    response = {"user": account.public_dict(), "credentialsSent": sent.success}
    if not sent.success:
        response["temporaryPassword"] = temporary_password
        response["message"] = f"User created, but credentials email failed: {sent.message}"
    else:
        response["message"] = f"User created and credentials sent to {account.email}"
    return response


@router.put("/{user_id}", response_model=dict)
async def update_user(
    user_id: str,
    user_data: UserUpdate,
    request: Request,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Update user.
    Admin only.
    """
    changes = user_data.model_dump(exclude_none=True)
    if "role" in changes:
        changes["role"] = _parse_role(changes["role"])
    if "email" in changes:
        changes["email"] = str(changes["email"])
        existing = store.list_accounts()
        if any(a.email.lower() == changes["email"].lower() and a.id != user_id for a in existing):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User with this email already exists"
            )
    if "whatsappNumber" in changes:
        changes["whatsappNumber"] = _normalize_whatsapp(changes["whatsappNumber"])

    _get_account_or_404(store, user_id)
    try:
        account = AuthService.update_account(store, user_id, changes)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.USER_UPDATE,
        details=f"Updated user: {account.username} ({', '.join(sorted(changes)) or 'no changes'})"
    )
    return account.public_dict()


@router.patch("/{user_id}/status", response_model=dict)
async def set_user_status(
    user_id: str,
    payload: StatusUpdate,
    request: Request,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Activate or deactivate a user.
    Admin only.
    """
    if user_id == current_account.id and not payload.isActive:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account"
        )
    _get_account_or_404(store, user_id)
    account = AuthService.set_active(store, user_id, payload.isActive)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.USER_STATUS_CHANGE,
        details=f"{'Activated' if account.isActive else 'Deactivated'} user: {account.username}"
    )
    return account.public_dict()


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Permanently delete a user record.
    Admin only.
    """
    if user_id == current_account.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account"
        )
    account = AuthService.delete_account(store, user_id)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.USER_DELETE,
        details=f"Deleted user: {account.username} ({account.role.value})"
    )
    return {"success": True}


@router.post("/{user_id}/reset-password")
async def reset_user_password(
    user_id: str,
    request: Request,
    current_account: Account = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """
    Reset a user's password to a new temporary one and email it.
    Admin only.
    """
    _get_account_or_404(store, user_id)
    account, temporary_password = AuthService.reset_password(store, user_id)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.PASSWORD_RESET,
        details=f"Reset password for user: {account.username}"
    )

    sent = await send_password_reset(email_sender, account, temporary_password)
    response = {"success": True, "credentialsSent": sent.success}
    if not sent.success:
        logger.warning(f"Password reset email failed for {account.username}, returning password to admin")
        response["temporaryPassword"] = temporary_password
    return response
