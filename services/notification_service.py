"""
Account notifications and sender wiring.

When FUNCTIONS_BASE_URL is set, email and WhatsApp go through the deployed
edge functions over HTTP; otherwise the providers are called in-process.
"""
from typing import Optional, Tuple, TYPE_CHECKING

import httpx

from database.models import ErrorKind
from database.schemas import Account
from services.channels import Attachment, DeliveryResult, EmailSender, WhatsAppSender
from services.email_service import EmailService
from services.whatsapp_service import WhatsAppService
from services.templates import login_credentials_body, password_reset_body, wrap_email_html
from core.logger import logger
import config

if TYPE_CHECKING:
    from fastapi_mail import FastMail


class _FunctionsClient:
    """POSTs JSON payloads to an edge function and maps the reply to a DeliveryResult."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url if base_url is not None else config.FUNCTIONS_BASE_URL).rstrip("/")
        self.api_key = config.FUNCTIONS_API_KEY if api_key is None else api_key
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    async def _post(self, function_name: str, payload: dict) -> DeliveryResult:
        if not self.is_configured:
            return DeliveryResult.failed("Edge functions URL not configured", ErrorKind.PROVIDER_UNAVAILABLE)

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        url = f"{self.base_url}/functions/v1/{function_name}"
        try:
            async with httpx.AsyncClient(timeout=config.PROVIDER_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(url, json=payload, headers=headers)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Functions] {function_name} request failed: {e}", exc_info=True)
            return DeliveryResult.failed(f"Failed to reach {function_name}: {e}")

        if not isinstance(data, dict):
            logger.error(f"[Functions] {function_name} returned {response.status_code} with a non-object body")
            return DeliveryResult.failed(f"Unexpected response from {function_name}: HTTP {response.status_code}")

        if response.is_success and data.get("success"):
            return DeliveryResult(
                success=True,
                message=data.get("message") or f"{function_name} succeeded",
                deliveryId=data.get("deliveryId")
            )

        error = data.get("error") or data.get("message") or f"HTTP {response.status_code}"
        logger.error(f"[Functions] {function_name} returned {response.status_code}: {error}")
        return DeliveryResult.failed(error)


class FunctionsEmailSender(_FunctionsClient, EmailSender):
    """Email sender calling the send-email edge function."""

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        payload = {
            "to": to,
            "subject": subject,
            "html": wrap_email_html(
                body,
                material_title=attachment.title if attachment else None,
                material_url=attachment.url if attachment else None
            ),
        }
        if attachment:
            payload["materialTitle"] = attachment.title
            payload["materialUrl"] = attachment.url
        return await self._post("send-email", payload)


class FunctionsWhatsAppSender(_FunctionsClient, WhatsAppSender):
    """WhatsApp sender calling the send-whatsapp edge function."""

    async def send(
        self,
        to: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        payload = {"to": to, "message": body}
        if attachment:
            payload["materialTitle"] = attachment.title
            payload["materialUrl"] = attachment.url
        return await self._post("send-whatsapp", payload)


def build_senders(mail: Optional["FastMail"] = None) -> Tuple[EmailSender, WhatsAppSender]:
    """Pick the email and WhatsApp senders from configuration."""
    if config.FUNCTIONS_BASE_URL:
        logger.info(f"[Notifications] Using edge functions at {config.FUNCTIONS_BASE_URL}")
        return FunctionsEmailSender(), FunctionsWhatsAppSender()
    return EmailService(mail=mail), WhatsAppService()


async def send_login_credentials(sender: EmailSender, account: Account, password: str) -> DeliveryResult:
    """Email the initial login credentials of a new account."""
    result = await sender.send(
        account.email,
        "StudyQ - Your Login Credentials",
        login_credentials_body(account, password)
    )
    if not result.success:
        logger.warning(f"Could not email login credentials to {account.username}: {result.message}")
    return result


async def send_password_reset(sender: EmailSender, account: Account, password: str) -> DeliveryResult:
    """Email a freshly reset temporary password."""
    result = await sender.send(
        account.email,
        "StudyQ - Password Reset",
        password_reset_body(account, password)
    )
    if not result.success:
        logger.warning(f"Could not email password reset to {account.username}: {result.message}")
    return result
