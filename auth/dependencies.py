"""
Authentication dependencies for FastAPI.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status, Security
from fastapi.security import HTTPAuthorizationCredentials

from database.models import UserRole
from database.schemas import Account
from database.stores import CredentialStore, MaterialStore, AuditLogStore, DeliveryLogStore
from auth.security import security, security_optional, decode_session_token
from services.channels import EmailSender, WhatsAppSender
from services.delivery_service import DeliveryDispatcher
import config


def _require_initialized(instance, name: str):
    if instance is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return instance


def get_credential_store() -> CredentialStore:
    return _require_initialized(config.credential_store, "Credential store")


def get_material_store() -> MaterialStore:
    return _require_initialized(config.material_store, "Material store")


def get_audit_store() -> AuditLogStore:
    return _require_initialized(config.audit_store, "Audit log store")


def get_delivery_log_store() -> DeliveryLogStore:
    return _require_initialized(config.delivery_log_store, "Delivery log store")


def get_email_sender() -> EmailSender:
    return _require_initialized(config.email_sender, "Email service")


def get_whatsapp_sender() -> WhatsAppSender:
    return _require_initialized(config.whatsapp_sender, "WhatsApp service")


def get_dispatcher(
    materials: MaterialStore = Depends(get_material_store),
    accounts: CredentialStore = Depends(get_credential_store),
    delivery_logs: DeliveryLogStore = Depends(get_delivery_log_store),
    email_sender: EmailSender = Depends(get_email_sender),
    whatsapp_sender: WhatsAppSender = Depends(get_whatsapp_sender)
) -> DeliveryDispatcher:
    return DeliveryDispatcher(materials, accounts, delivery_logs, email_sender, whatsapp_sender)


async def get_current_account(
    credentials: HTTPAuthorizationCredentials = Security(security),
    store: CredentialStore = Depends(get_credential_store)
) -> Account:
    """
    Get current authenticated account from the session token.

    Raises:
        HTTPException: If authentication fails
    """
    payload = decode_session_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    account = store.get(payload["sub"])
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not account.isActive:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return account


async def get_current_account_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    store: CredentialStore = Depends(get_credential_store)
) -> Optional[Account]:
    """Current account if a valid bearer token was sent, otherwise None."""
    if credentials is None:
        return None

    try:
        return await get_current_account(credentials, store)
    except HTTPException:
        return None


def require_role(allowed_roles: list[str]):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: List of allowed roles

    Returns:
        Dependency function
    """
    async def role_checker(
        current_account: Account = Depends(get_current_account)
    ) -> Account:
        if current_account.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_account

    return role_checker


require_admin = require_role([UserRole.ADMIN.value])
require_teacher = require_role([UserRole.ADMIN.value, UserRole.TEACHER.value])
require_student = require_role([UserRole.STUDENT.value])
require_user = require_role([role.value for role in UserRole])
