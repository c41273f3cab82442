"""
Edge function endpoints proxying to SendGrid (email) and Twilio (WhatsApp).

Wire format:
    POST /functions/v1/send-email     {to, subject, html, materialTitle?, materialUrl?}
    POST /functions/v1/send-whatsapp  {to, message, materialTitle?, materialUrl?}
    -> {success, message | error, deliveryId?}
200 on success, 400 on missing fields, 500 on provider error or missing configuration.
"""
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from services.channels import Attachment, DeliveryResult
from services.email_service import EmailService
from services.whatsapp_service import WhatsAppService
from core.logger import logger
import config


router = APIRouter(prefix="/functions/v1", tags=["functions"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def get_function_email_service() -> EmailService:
    return EmailService(mail=config.mail)


def get_function_whatsapp_service() -> WhatsAppService:
    return WhatsAppService()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=CORS_HEADERS
    )


def _result_response(result: DeliveryResult) -> JSONResponse:
    if not result.success:
        return _error(result.error or result.message, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "message": result.message, "deliveryId": result.deliveryId},
        headers=CORS_HEADERS
    )


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _attachment(body: dict):
    if body.get("materialTitle") and body.get("materialUrl"):
        return Attachment(title=body["materialTitle"], url=body["materialUrl"])
    return None


@router.options("/send-email")
@router.options("/send-whatsapp")
async def functions_preflight():
    """CORS preflight."""
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("/send-email")
async def send_email_function(
    request: Request,
    email_service: EmailService = Depends(get_function_email_service)
):
    """Send an HTML email through SendGrid."""
    body = await _read_json(request)
    to, subject, html = body.get("to"), body.get("subject"), body.get("html")
    if not to or not subject or not html:
        return _error("Missing required fields: to, subject, html", status.HTTP_400_BAD_REQUEST)

    if not email_service.is_configured:
        logger.error("[Functions] send-email called without an email provider configured")
        return _error("SendGrid API key not configured", status.HTTP_500_INTERNAL_SERVER_ERROR)

    result = await email_service.send_html(to, subject, html, _attachment(body))
    return _result_response(result)


@router.post("/send-whatsapp")
async def send_whatsapp_function(
    request: Request,
    whatsapp_service: WhatsAppService = Depends(get_function_whatsapp_service)
):
    """Send a WhatsApp message through Twilio."""
    body = await _read_json(request)
    to, message = body.get("to"), body.get("message")
    if not to or not message:
        return _error("Missing required fields: to, message", status.HTTP_400_BAD_REQUEST)

    if not whatsapp_service.is_configured:
        logger.error("[Functions] send-whatsapp called without Twilio credentials")
        return _error("Twilio credentials not configured", status.HTTP_500_INTERNAL_SERVER_ERROR)

    result = await whatsapp_service.send(to, message, _attachment(body))
    return _result_response(result)
