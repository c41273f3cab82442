"""
Database models and enums for the study-material portal.

All portal state lives in a single key-value table; each store keeps its
records as one JSON document under a fixed key.
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# Enums
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class DeliveryChannel(str, enum.Enum):
    """Delivery transport requested by a student."""
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    BOTH = "both"


class DeliveryStatus(str, enum.Enum):
    """Outcome of one delivery request."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class AuditAction(str, enum.Enum):
    """Audit event tags."""
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PASSWORD_RESET = "PASSWORD_RESET"
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    USER_STATUS_CHANGE = "USER_STATUS_CHANGE"
    MATERIAL_UPLOAD = "MATERIAL_UPLOAD"
    MATERIAL_UPDATE = "MATERIAL_UPDATE"
    MATERIAL_DELETE = "MATERIAL_DELETE"
    MATERIAL_DOWNLOAD = "MATERIAL_DOWNLOAD"
    MATERIAL_DELIVERY = "MATERIAL_DELIVERY"


class ErrorKind(str, enum.Enum):
    """Failure categories reported by services in their result objects."""
    INVALID_CREDENTIALS = "InvalidCredentials"
    ACCOUNT_INACTIVE = "AccountInactive"
    ACCOUNT_LOCKED = "AccountLocked"
    NOT_FOUND = "NotFound"
    VALIDATION_FAILED = "ValidationFailed"
    DELIVERY_CHANNEL_FAILURE = "DeliveryChannelFailure"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"


# ============================================================================
# Models
# ============================================================================

class KeyValueEntry(Base):
    """Durable key-value pair holding one serialized store document."""
    __tablename__ = "kv_store"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
