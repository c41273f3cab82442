"""
Demo accounts and sample materials for a fresh installation.
"""
from datetime import datetime
from typing import Dict

from database.models import UserRole
from database.schemas import Material
from database.stores import CredentialStore, MaterialStore
from services.auth_service import AuthService
from core.logger import logger

DEMO_ACCOUNTS = [
    {
        "account_id": "admin-001", "username": "admin", "password": "admin123",
        "first_name": "System", "last_name": "Administrator",
        "email": "admin@studyq.edu", "role": UserRole.ADMIN,
    },
    {
        "account_id": "teacher-001", "username": "prof.smith", "password": "teacher123",
        "first_name": "John", "last_name": "Smith",
        "email": "prof.smith@studyq.edu", "role": UserRole.TEACHER,
    },
    {
        "account_id": "student-001", "username": "john.doe", "password": "student123",
        "first_name": "John", "last_name": "Doe",
        "email": "john.doe@student.edu", "role": UserRole.STUDENT,
        "academic_year": 2024, "current_semester": 3, "whatsapp_number": "+1234567890",
    },
    {
        "account_id": "student-002", "username": "jane.smith", "password": "student123",
        "first_name": "Jane", "last_name": "Smith",
        "email": "jane.smith@student.edu", "role": UserRole.STUDENT,
        "academic_year": 2024, "current_semester": 5, "whatsapp_number": "+1234567891",
    },
]

SAMPLE_MATERIALS = [
    {
        "id": "MAT-001", "title": "Introduction to Computer Science",
        "description": "Basic concepts of computer science and programming",
        "fileName": "intro-cs.pdf", "fileSize": 2048576, "semester": 1,
        "tags": ["programming", "basics", "introduction"], "downloadCount": 45,
    },
    {
        "id": "MAT-002", "title": "Data Structures and Algorithms",
        "description": "Comprehensive guide to data structures and algorithms",
        "fileName": "dsa.pdf", "fileSize": 3145728, "semester": 3,
        "tags": ["algorithms", "data-structures", "programming"], "downloadCount": 32,
    },
    {
        "id": "MAT-003", "title": "Database Management Systems",
        "description": "Relational databases, SQL and normalization",
        "fileName": "dbms.pdf", "fileSize": 4194304, "semester": 4,
        "tags": ["database", "sql", "normalization"], "downloadCount": 28,
    },
]


def seed_demo_data(credential_store: CredentialStore, material_store: MaterialStore) -> Dict[str, int]:
    """
    Create the demo accounts and sample materials if their stores are empty.

    Returns:
        Number of accounts and materials created
    """
    created = {"accounts": 0, "materials": 0}

    if credential_store.count() == 0:
        for demo in DEMO_ACCOUNTS:
            AuthService.create_account(credential_store, must_change_password=False, **demo)
            created["accounts"] += 1
        logger.info(f"Seeded {created['accounts']} demo accounts")

    if material_store.count() == 0:
        teacher = credential_store.get("teacher-001")
        for sample in SAMPLE_MATERIALS:
            material_store.save(Material(
                fileType="application/pdf",
                uploadedBy="teacher-001",
                uploadedByName=teacher.full_name if teacher else "",
                uploadDate=datetime.utcnow().isoformat(),
                academicYear=2024,
                subject="Computer Science",
                isActive=True,
                **sample
            ))
            created["materials"] += 1
        logger.info(f"Seeded {created['materials']} sample materials")

    return created
