"""
System settings and provider test APIs (Admin).
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from typing import Optional

from database.schemas import Account
from auth.dependencies import require_admin, get_email_sender, get_whatsapp_sender
from core.validators import validate_email, validate_indian_phone, format_indian_phone
from services.channels import DeliveryResult, EmailSender, WhatsAppSender
from services.templates import provider_test_body
from core.logger import logger
import config


router = APIRouter(prefix="/api/settings", tags=["settings"])


class ProviderTestRequest(BaseModel):
    """Optional recipient override for a provider test."""
    to: Optional[str] = None


@router.get("", response_model=dict)
async def get_settings(
    current_account: Account = Depends(require_admin),
    email_sender: EmailSender = Depends(get_email_sender),
    whatsapp_sender: WhatsAppSender = Depends(get_whatsapp_sender)
):
    """
    Current security policy and delivery configuration.
    Admin only.
    """
    return {
        "security": {
            "maxLoginAttempts": config.MAX_LOGIN_ATTEMPTS,
            "lockoutDuration": config.LOCKOUT_DURATION_MINUTES,
            "passwordMinLength": config.PASSWORD_MIN_LENGTH,
            "sessionTimeout": config.SESSION_EXPIRE_MINUTES,
        },
        "delivery": {
            "emailConfigured": email_sender.is_configured,
            "whatsappConfigured": whatsapp_sender.is_configured,
            "defaultEmail": config.DEFAULT_DELIVERY_EMAIL,
            "defaultWhatsApp": config.DEFAULT_DELIVERY_WHATSAPP,
            "downloadLinkHours": config.DOWNLOAD_LINK_EXPIRE_HOURS,
            "useEdgeFunctions": bool(config.FUNCTIONS_BASE_URL),
        },
        "materials": {
            "maxFileSizeMb": config.MAX_MATERIAL_SIZE_MB,
            "allowedExtensions": sorted(config.ALLOWED_MATERIAL_EXTENSIONS),
            "maxSemester": config.MAX_SEMESTER,
        },
        "app": {
            "name": config.APP_NAME,
            "version": config.APP_VERSION,
            "environment": config.ENVIRONMENT,
        },
    }


@router.post("/test-email", response_model=DeliveryResult)
async def test_email(
    payload: Optional[ProviderTestRequest] = None,
    current_account: Account = Depends(require_admin),
    email_sender: EmailSender = Depends(get_email_sender)
):
    """
    Send a test email to the given address or the default delivery address.
    Admin only.
    """
    to = (payload.to if payload and payload.to else config.DEFAULT_DELIVERY_EMAIL).strip()
    if not validate_email(to):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter a valid email address")

    result = await email_sender.send(to, "StudyQ Email Service Test", provider_test_body("Email"))
    logger.info(f"Test email to {to} by {current_account.username}: {result.message}")
    return result


@router.post("/test-whatsapp", response_model=DeliveryResult)
async def test_whatsapp(
    payload: Optional[ProviderTestRequest] = None,
    current_account: Account = Depends(require_admin),
    whatsapp_sender: WhatsAppSender = Depends(get_whatsapp_sender)
):
    """
    Send a test WhatsApp message to the given number or the default delivery number.
    Admin only.
    """
    to = (payload.to if payload and payload.to else config.DEFAULT_DELIVERY_WHATSAPP).strip()
    if not validate_indian_phone(to):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Please enter a valid Indian mobile number (10 digits starting with 6-9)"
        )

    to = format_indian_phone(to)
    result = await whatsapp_sender.send(to, provider_test_body("WhatsApp"))
    logger.info(f"Test WhatsApp to {to} by {current_account.username}: {result.message}")
    return result
