"""
WhatsApp messaging through the Twilio REST API.
"""
from datetime import datetime
from typing import Optional

import httpx

from database.models import ErrorKind
from services.channels import Attachment, DeliveryResult, WhatsAppSender
from core.logger import logger
import config


def to_whatsapp_address(number: str) -> str:
    """Normalize a phone number to Twilio's ``whatsapp:+...`` form."""
    number = number.strip()
    return number if number.startswith("whatsapp:") else f"whatsapp:{number}"


class WhatsAppService(WhatsAppSender):
    """WhatsApp sender backed by Twilio."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.account_sid = config.TWILIO_ACCOUNT_SID if account_sid is None else account_sid
        self.auth_token = config.TWILIO_AUTH_TOKEN if auth_token is None else auth_token
        self.from_number = to_whatsapp_address(from_number or config.TWILIO_WHATSAPP_NUMBER)
        self.transport = transport

        if not self.is_configured:
            logger.warning("[WhatsApp] Twilio credentials not set (TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN)")

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    @property
    def messages_url(self) -> str:
        return f"{config.TWILIO_API_BASE_URL}/Accounts/{self.account_sid}/Messages.json"

    async def send(
        self,
        to: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        """
        Send a WhatsApp message.

        Args:
            to: Recipient phone number, with or without the ``whatsapp:`` prefix
            body: Message text
            attachment: Optional material reference sent as MediaUrl

        Returns:
            DeliveryResult; never raises
        """
        if not to:
            return DeliveryResult.failed("No recipient WhatsApp number")

        if not self.is_configured:
            return DeliveryResult.failed("Twilio credentials not configured", ErrorKind.PROVIDER_UNAVAILABLE)

        form = {
            "From": self.from_number,
            "To": to_whatsapp_address(to),
            "Body": body,
        }
        if attachment and attachment.url:
            form["MediaUrl"] = attachment.url

        try:
            async with httpx.AsyncClient(
                auth=(self.account_sid, self.auth_token),
                timeout=config.PROVIDER_TIMEOUT_SECONDS,
                transport=self.transport
            ) as client:
                response = await client.post(self.messages_url, data=form)

            if response.is_success:
                sid = response.json().get("sid")
                logger.info(f"[WhatsApp/Twilio] Message sent successfully to {to}")
                return DeliveryResult(
                    success=True,
                    message=f"WhatsApp message sent successfully to {to}",
                    deliveryId=sid or f"WA_{int(datetime.utcnow().timestamp() * 1000)}"
                )

            logger.error(f"[WhatsApp/Twilio] API error {response.status_code}: {response.text}")
            return DeliveryResult.failed(f"Twilio API error: {response.status_code}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[WhatsApp/Twilio] Failed to send message to {to}: {e}", exc_info=True)
            return DeliveryResult.failed(f"Failed to send WhatsApp message: {e}")
