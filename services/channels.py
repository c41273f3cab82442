"""
Channel sender contracts shared by the email and WhatsApp implementations.
"""
from typing import Optional
from pydantic import BaseModel

from database.models import ErrorKind


class Attachment(BaseModel):
    """Material reference attached to an outgoing message (a bare URL)."""
    title: str
    url: str


class DeliveryResult(BaseModel):
    """Outcome of one send on one channel. Senders report failures here instead of raising."""
    success: bool
    message: str
    deliveryId: Optional[str] = None
    error: Optional[str] = None
    errorKind: Optional[ErrorKind] = None

    @classmethod
    def failed(cls, message: str, kind: ErrorKind = ErrorKind.DELIVERY_CHANNEL_FAILURE) -> "DeliveryResult":
        return cls(success=False, message=message, error=message, errorKind=kind)


class EmailSender:
    """Sends one email. Implementations must not raise."""

    @property
    def is_configured(self) -> bool:
        return True

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        raise NotImplementedError


class WhatsAppSender:
    """Sends one WhatsApp message. Implementations must not raise."""

    @property
    def is_configured(self) -> bool:
        return True

    async def send(
        self,
        to: str,
        body: str,
        attachment: Optional[Attachment] = None
    ) -> DeliveryResult:
        raise NotImplementedError
