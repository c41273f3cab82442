"""
Audit logging service for security and compliance.
"""
from datetime import datetime
from typing import Optional, List, Union
from fastapi import Request

from database.models import AuditAction
from database.schemas import AuditEvent
from database.stores import AuditLogStore
from auth.security import generate_record_id
from core.logger import logger


class AuditService:
    """Service for audit logging."""

    @staticmethod
    def record(
        store: AuditLogStore,
        actor_id: str,
        actor_name: str,
        action: Union[AuditAction, str],
        details: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Optional[AuditEvent]:
        """
        Append an event to the audit log.

        Fire-and-forget: storage failures are logged, never raised.

        Args:
            store: Audit log store
            actor_id: Acting user id ("anonymous" for failed logins)
            actor_name: Acting user display name
            action: Action tag (e.g. LOGIN, MATERIAL_UPLOAD)
            details: Free text
            ip_address: IP address
            user_agent: User agent string

        Returns:
            Created AuditEvent, or None if it could not be stored
        """
        event = AuditEvent(
            id=generate_record_id(),
            userId=actor_id,
            userName=actor_name,
            action=action.value if isinstance(action, AuditAction) else str(action),
            details=details,
            timestamp=datetime.utcnow().isoformat(),
            ipAddress=ip_address,
            userAgent=user_agent
        )
        try:
            return store.append(event)
        except Exception as e:
            logger.error(f"Failed to record audit event {event.action}: {e}", exc_info=True)
            return None

    @staticmethod
    def record_from_request(
        store: AuditLogStore,
        request: Optional[Request],
        actor_id: str,
        actor_name: str,
        action: Union[AuditAction, str],
        details: str
    ) -> Optional[AuditEvent]:
        """
        Record an action from a FastAPI request.

        Args:
            store: Audit log store
            request: FastAPI request object
            actor_id: Acting user id
            actor_name: Acting user display name
            action: Action tag
            details: Free text

        Returns:
            Created AuditEvent, or None
        """
        ip_address = None
        user_agent = None
        if request is not None:
            ip_address = request.client.host if request.client else None
            user_agent = request.headers.get("user-agent")

        return AuditService.record(
            store=store,
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent
        )

    @staticmethod
    def list_events(store: AuditLogStore) -> List[AuditEvent]:
        """All events, newest first."""
        return store.list()

    @staticmethod
    def list_by_actor(store: AuditLogStore, actor_id: str) -> List[AuditEvent]:
        return store.list_by_actor(actor_id)

    @staticmethod
    def list_by_date_range(store: AuditLogStore, start: datetime, end: datetime) -> List[AuditEvent]:
        """Events whose timestamp lies within [start, end]."""
        return store.list_by_date_range(start, end)
