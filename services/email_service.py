"""
Email service for material delivery and account notifications.
Uses SendGrid when an API key is configured, fastapi-mail (SMTP) otherwise.
"""
import asyncio
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from database.models import ErrorKind
from services.channels import Attachment, DeliveryResult, EmailSender
from services.templates import wrap_email_html
from core.logger import logger
import config

if TYPE_CHECKING:
    from fastapi_mail import FastMail


class EmailService(EmailSender):
    """Email sender backed by SendGrid, with fastapi-mail as SMTP fallback."""

    def __init__(self, mail: Optional["FastMail"] = None, sendgrid_api_key: Optional[str] = None):
        self.sendgrid_api_key = config.SENDGRID_API_KEY if sendgrid_api_key is None else sendgrid_api_key
        self.from_email = config.FROM_EMAIL
        self.from_name = config.FROM_NAME
        self.mail = mail
        self.use_sendgrid = bool(self.sendgrid_api_key)

        if self.use_sendgrid:
            logger.info("[Email] Using SendGrid for email delivery")
        elif self.mail is not None:
            logger.info("[Email] Using SMTP (fastapi-mail) for email delivery")
        else:
            logger.warning("[Email] No email provider configured (set SENDGRID_API_KEY or SMTP_USER/SMTP_PASSWORD)")

    @property
    def is_configured(self) -> bool:
        return self.use_sendgrid or self.mail is not None

    @property
    def provider(self) -> str:
        if self.use_sendgrid:
            return "sendgrid"
        return "smtp" if self.mail is not None else "none"

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        """
        Send a plain text body wrapped in the HTML layout.

        Args:
            to: Recipient email address
            subject: Email subject
            body: Plain text body
            attachment: Optional material reference shown as a download button

        Returns:
            DeliveryResult; never raises
        """
        html_body = wrap_email_html(
            body,
            material_title=attachment.title if attachment else None,
            material_url=attachment.url if attachment else None
        )
        return await self.send_html(to, subject, html_body, attachment)

    async def send_html(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        """Send a pre-rendered HTML email."""
        if not to:
            return DeliveryResult.failed("No recipient email address")

        if not self.is_configured:
            logger.error("[Email] Email service not configured, cannot send email")
            return DeliveryResult.failed("SendGrid API key not configured", ErrorKind.PROVIDER_UNAVAILABLE)

        if self.use_sendgrid:
            return await self._send_via_sendgrid(to, subject, html_body)
        return await self._send_via_smtp(to, subject, html_body)

    async def _send_via_sendgrid(self, to: str, subject: str, html_body: str) -> DeliveryResult:
        """Send email via SendGrid API"""
        try:
            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to),
                subject=subject,
                html_content=Content("text/html", html_body)
            )
            sg = SendGridAPIClient(self.sendgrid_api_key)
            # Run synchronous SendGrid call in thread pool
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, sg.send, message)

            if response.status_code in (200, 201, 202):
                headers = getattr(response, "headers", None) or {}
                delivery_id = headers.get("X-Message-Id") or f"EMAIL_{int(datetime.utcnow().timestamp() * 1000)}"
                logger.info(f"[Email/SendGrid] Successfully sent email to {to}: {subject}")
                return DeliveryResult(
                    success=True,
                    message=f"Email sent successfully to {to}",
                    deliveryId=delivery_id
                )

            logger.error(f"[Email/SendGrid] Failed with status {response.status_code}: {response.body}")
            return DeliveryResult.failed(f"SendGrid API error: {response.status_code}")
        except Exception as e:
            logger.error(f"[Email/SendGrid] Failed to send email to {to}: {e}", exc_info=True)
            return DeliveryResult.failed(f"Failed to send email: {e}")

    async def _send_via_smtp(self, to: str, subject: str, html_body: str) -> DeliveryResult:
        """Send email via SMTP using fastapi-mail"""
        from fastapi_mail import MessageSchema, MessageType

        message = MessageSchema(
            subject=subject,
            recipients=[to],
            body=html_body,
            subtype=MessageType.html,
        )
        try:
            await self.mail.send_message(message)
            logger.info(f"[Email/SMTP] Successfully sent email to {to}: {subject}")
            return DeliveryResult(
                success=True,
                message=f"Email sent successfully to {to}",
                deliveryId=f"EMAIL_{int(datetime.utcnow().timestamp() * 1000)}"
            )
        except Exception as e:
            logger.error(f"[Email/SMTP] Failed to send email to {to}: {e}", exc_info=True)
            return DeliveryResult.failed(f"Failed to send email: {e}")
