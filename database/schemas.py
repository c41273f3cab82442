"""
Record types persisted in the key-value stores.

Field names are camelCase because they are the serialized document format.
"""
from typing import List, Optional
from pydantic import BaseModel

from database.models import UserRole, DeliveryChannel, DeliveryStatus


class Account(BaseModel):
    """User identity with credentials, role and lockout state."""
    id: str
    username: str
    email: str
    role: UserRole
    firstName: str = ""
    lastName: str = ""
    isActive: bool = True
    createdAt: str
    lastLogin: Optional[str] = None
    mustChangePassword: bool = False
    failedLoginAttempts: int = 0
    lockedUntil: Optional[str] = None
    passwordHash: Optional[str] = None
    # Student-specific fields
    academicYear: Optional[int] = None
    currentSemester: Optional[int] = None
    whatsappNumber: Optional[str] = None

    @property
    def full_name(self) -> str:
        name = f"{self.firstName} {self.lastName}".strip()
        return name or self.username

    def public_dict(self) -> dict:
        """Serialized account without the password hash."""
        data = self.model_dump(mode="json")
        data.pop("passwordHash", None)
        return data


class Material(BaseModel):
    """One uploaded study document."""
    id: str
    title: str
    description: str = ""
    fileName: str
    fileSize: int
    fileType: str
    uploadedBy: str
    uploadedByName: str = ""
    uploadDate: str
    semester: int
    academicYear: int
    subject: str
    tags: List[str] = []
    isActive: bool = True
    downloadCount: int = 0

    def is_visible_to(self, student: Account) -> bool:
        if student.currentSemester is None:
            return False
        return (
            self.isActive
            and self.semester <= student.currentSemester
            and self.academicYear == student.academicYear
        )


class AuditEvent(BaseModel):
    """Immutable record of a security- or content-relevant action."""
    id: str
    userId: str
    userName: str
    action: str
    details: str
    timestamp: str
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None


class DeliveryLog(BaseModel):
    """Outcome of one delivery request."""
    id: str
    materialId: str
    materialTitle: str
    studentId: str
    studentName: str
    deliveryMethod: DeliveryChannel
    status: DeliveryStatus
    timestamp: str
    email: Optional[str] = None
    whatsappNumber: Optional[str] = None
