"""
Authentication endpoints: login with lockout, logout, current user and password change.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from pydantic import BaseModel
from typing import Optional

from database.models import AuditAction, ErrorKind
from database.schemas import Account
from database.stores import CredentialStore, AuditLogStore
from auth.dependencies import get_current_account, get_credential_store, get_audit_store
from auth.security import validate_password_strength, PasswordValidation
from services.auth_service import AuthService
from services.audit_service import AuditService
from core.logger import logger
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])

# Status code per authentication failure
AUTH_ERROR_STATUS = {
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.ACCOUNT_INACTIVE: status.HTTP_403_FORBIDDEN,
    ErrorKind.ACCOUNT_LOCKED: status.HTTP_423_LOCKED,
}


# Request Models
class LoginRequest(BaseModel):
    """Login request."""
    username: str = ""
    password: str = ""


class ChangePasswordRequest(BaseModel):
    """Change own password."""
    currentPassword: str
    newPassword: str
    confirmPassword: str


class ValidatePasswordRequest(BaseModel):
    password: str = ""


class TokenResponse(BaseModel):
    """Token response model."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    issued_at: str
    mustChangePassword: bool
    user: dict


class LogoutResponse(BaseModel):
    """Logout response."""
    success: bool


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Login with username + password.

    Five consecutive failures lock the account for fifteen minutes.
    Returns a session token and the account.
    """
    username = credentials.username.strip()
    result = AuthService.authenticate(store, username, credentials.password)

    if not result.success:
        AuditService.record_from_request(
            store=audit_store,
            request=request,
            actor_id="anonymous",
            actor_name=username or "anonymous",
            action=AuditAction.LOGIN_FAILED,
            details=f"Failed login attempt for username: {username} ({result.errorKind.value})"
        )
        raise HTTPException(
            status_code=AUTH_ERROR_STATUS.get(result.errorKind, status.HTTP_401_UNAUTHORIZED),
            detail=result.error
        )

    account = result.account
    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=account.id,
        actor_name=account.full_name,
        action=AuditAction.LOGIN,
        details="User logged in successfully"
    )
    logger.info(f"User logged in: {account.username}")

    return TokenResponse(
        access_token=result.token,
        expires_in=config.SESSION_EXPIRE_MINUTES * 60,
        issued_at=result.session.issuedAt,
        mustChangePassword=account.mustChangePassword,
        user=account.public_dict()
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    current_account: Account = Depends(get_current_account),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """Logout. Tokens are stateless; the client discards its copy."""
    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.LOGOUT,
        details="User logged out"
    )
    return {"success": True}


@router.get("/me", response_model=dict)
async def get_me(current_account: Account = Depends(get_current_account)):
    """Get the authenticated account."""
    return current_account.public_dict()


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    request: Request,
    current_account: Account = Depends(get_current_account),
    store: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """Change own password; clears the forced-change flag."""
    success, error = AuthService.change_password(
        store,
        current_account.id,
        payload.currentPassword,
        payload.newPassword,
        payload.confirmPassword
    )
    if not success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.PASSWORD_CHANGE,
        details="User changed password"
    )
    return {"success": True, "message": "Password changed successfully"}


@router.post("/validate-password", response_model=PasswordValidation)
async def validate_password(payload: ValidatePasswordRequest):
    """Check a candidate password against the password policy."""
    return validate_password_strength(payload.password)
