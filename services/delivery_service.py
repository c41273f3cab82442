"""
Material delivery to students over email and WhatsApp.
"""
import asyncio
from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel

from database.models import DeliveryChannel, DeliveryStatus, ErrorKind
from database.schemas import Account, Material, DeliveryLog
from database.stores import CredentialStore, MaterialStore, DeliveryLogStore
from services.channels import Attachment, DeliveryResult, EmailSender, WhatsAppSender
from services.templates import material_email_subject, material_email_body, material_whatsapp_body
from auth.security import build_download_url, generate_record_id
from core.logger import logger
import config

BOTH_SENT_MESSAGE = "Material delivered successfully via both email and WhatsApp"
EMAIL_ONLY_MESSAGE = "Material delivered via email (WhatsApp failed)"
WHATSAPP_ONLY_MESSAGE = "Material delivered via WhatsApp (Email failed)"
BOTH_FAILED_MESSAGE = "Failed to deliver material via both methods"
NOT_FOUND_MESSAGE = "Material or student not found"
SYSTEM_ERROR_MESSAGE = "Failed to deliver material due to system error"


class DeliveryOutcome(BaseModel):
    """Aggregated result of one delivery request."""
    success: bool
    message: str
    errorKind: Optional[ErrorKind] = None
    log: Optional[DeliveryLog] = None


class DeliveryDispatcher:
    """
    Resolves a material and a student, sends on the requested channel(s) and
    writes exactly one DeliveryLog per request.

    Each channel gets one attempt; there is no retry or queueing. In ``both``
    mode the two sends run concurrently and overall success means at least
    one channel got through.
    """

    def __init__(
        self,
        material_store: MaterialStore,
        credential_store: CredentialStore,
        delivery_log_store: DeliveryLogStore,
        email_sender: EmailSender,
        whatsapp_sender: WhatsAppSender
    ):
        self.material_store = material_store
        self.credential_store = credential_store
        self.delivery_log_store = delivery_log_store
        self.email_sender = email_sender
        self.whatsapp_sender = whatsapp_sender

    async def deliver(
        self,
        material_id: str,
        student_id: str,
        channel: Union[DeliveryChannel, str],
        email: Optional[str] = None,
        whatsapp_number: Optional[str] = None
    ) -> DeliveryOutcome:
        """
        Deliver a material to a student.

        Args:
            material_id: Material id
            student_id: Student account id
            channel: email, whatsapp or both
            email: Recipient email override
            whatsapp_number: Recipient WhatsApp number override

        Returns:
            DeliveryOutcome; never raises
        """
        channel = DeliveryChannel(channel)
        material = self.material_store.get(material_id)
        student = self.credential_store.get(student_id)
        if material is None or student is None:
            logger.warning(f"Delivery requested for unknown material {material_id} or student {student_id}")
            return DeliveryOutcome(success=False, message=NOT_FOUND_MESSAGE, errorKind=ErrorKind.NOT_FOUND)

        send_email = channel in (DeliveryChannel.EMAIL, DeliveryChannel.BOTH)
        send_whatsapp = channel in (DeliveryChannel.WHATSAPP, DeliveryChannel.BOTH)
        recipient_email = (email or student.email or config.DEFAULT_DELIVERY_EMAIL) if send_email else None
        recipient_whatsapp = (
            whatsapp_number or student.whatsappNumber or config.DEFAULT_DELIVERY_WHATSAPP
        ) if send_whatsapp else None

        try:
            download_url = build_download_url(material.id, student.id)
            attachment = Attachment(title=material.title, url=download_url)

            calls = []
            if send_email:
                calls.append(self.email_sender.send(
                    recipient_email,
                    material_email_subject(material),
                    material_email_body(student, material, download_url),
                    attachment
                ))
            if send_whatsapp:
                calls.append(self.whatsapp_sender.send(
                    recipient_whatsapp,
                    material_whatsapp_body(student, material, download_url),
                    attachment
                ))

            results = [
                self._channel_result(result)
                for result in await asyncio.gather(*calls, return_exceptions=True)
            ]

            if channel == DeliveryChannel.BOTH:
                success, message = self._aggregate(results[0], results[1])
            else:
                success, message = results[0].success, results[0].message
        except Exception as e:
            logger.error(f"Delivery of {material_id} to {student_id} failed unexpectedly: {e}", exc_info=True)
            log = self._write_log(material, student, channel, False, recipient_email, recipient_whatsapp)
            return DeliveryOutcome(
                success=False,
                message=SYSTEM_ERROR_MESSAGE,
                errorKind=ErrorKind.DELIVERY_CHANNEL_FAILURE,
                log=log
            )

        log = self._write_log(material, student, channel, success, recipient_email, recipient_whatsapp)
        if success:
            self.material_store.increment_download_count(material.id)
            logger.info(f"Delivered {material.id} to {student.username} via {channel.value}")
            return DeliveryOutcome(success=True, message=message, log=log)

        kind = ErrorKind.DELIVERY_CHANNEL_FAILURE
        if len(results) == 1 and results[0].errorKind:
            kind = results[0].errorKind
        logger.warning(f"Delivery of {material.id} to {student.username} via {channel.value} failed: {message}")
        return DeliveryOutcome(success=False, message=message, errorKind=kind, log=log)

    @staticmethod
    def _channel_result(result: Union[DeliveryResult, BaseException]) -> DeliveryResult:
        """A sender that raised counts as a failed channel."""
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error(f"Channel sender raised: {result!r}", exc_info=result)
            return DeliveryResult.failed(f"Channel error: {result}")
        return result

    @staticmethod
    def _aggregate(email_result: DeliveryResult, whatsapp_result: DeliveryResult):
        if email_result.success and whatsapp_result.success:
            return True, BOTH_SENT_MESSAGE
        if email_result.success:
            return True, EMAIL_ONLY_MESSAGE
        if whatsapp_result.success:
            return True, WHATSAPP_ONLY_MESSAGE
        return False, BOTH_FAILED_MESSAGE

    def _write_log(
        self,
        material: Material,
        student: Account,
        channel: DeliveryChannel,
        success: bool,
        recipient_email: Optional[str],
        recipient_whatsapp: Optional[str]
    ) -> Optional[DeliveryLog]:
        log = DeliveryLog(
            id=generate_record_id(),
            materialId=material.id,
            materialTitle=material.title,
            studentId=student.id,
            studentName=student.full_name,
            deliveryMethod=channel,
            status=DeliveryStatus.SENT if success else DeliveryStatus.FAILED,
            timestamp=datetime.utcnow().isoformat(),
            email=recipient_email,
            whatsappNumber=recipient_whatsapp
        )
        try:
            return self.delivery_log_store.append(log)
        except Exception as e:
            logger.error(f"Failed to write delivery log for {material.id}: {e}", exc_info=True)
            return None
