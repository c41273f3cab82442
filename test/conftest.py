"""
StudyQ - Test Configuration and Fixtures
"""
import os
from datetime import datetime
from typing import Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from faker import Faker

# Set testing environment before config is imported
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['SEED_DEMO_DATA'] = 'false'
os.environ['FUNCTIONS_BASE_URL'] = ''
os.environ['SENDGRID_API_KEY'] = ''
os.environ['TWILIO_ACCOUNT_SID'] = ''
os.environ['TWILIO_AUTH_TOKEN'] = ''
os.environ['SMTP_USER'] = ''
os.environ['SMTP_PASSWORD'] = ''

import config
from app import app
from auth.security import create_session_token, generate_material_id
from database.kv_store import MemoryKeyValueStore
from database.models import UserRole
from database.schemas import Account, Material
from database.stores import CredentialStore, MaterialStore, AuditLogStore, DeliveryLogStore
from services.auth_service import AuthService
from services.channels import DeliveryResult, EmailSender, WhatsAppSender

fake = Faker()

DEFAULT_PASSWORD = 'Passw0rd!'


class FakeEmailSender(EmailSender):
    """Records calls; succeeds, fails or raises on demand."""

    def __init__(self, success: bool = True, message: Optional[str] = None, error: Optional[Exception] = None):
        self.success = success
        self.message = message
        self.error = error
        self.calls = []

    async def send(self, to, subject, body, attachment=None):
        self.calls.append({'to': to, 'subject': subject, 'body': body, 'attachment': attachment})
        if self.error:
            raise self.error
        if self.success:
            return DeliveryResult(success=True, message=f'Email sent successfully to {to}', deliveryId='EMAIL_TEST')
        return DeliveryResult.failed(self.message or 'SendGrid API error: 500')


class FakeWhatsAppSender(WhatsAppSender):
    """Records calls; succeeds, fails or raises on demand."""

    def __init__(self, success: bool = True, message: Optional[str] = None, error: Optional[Exception] = None):
        self.success = success
        self.message = message
        self.error = error
        self.calls = []

    async def send(self, to, body, attachment=None):
        self.calls.append({'to': to, 'body': body, 'attachment': attachment})
        if self.error:
            raise self.error
        if self.success:
            return DeliveryResult(success=True, message=f'WhatsApp message sent successfully to {to}', deliveryId='SM_TEST')
        return DeliveryResult.failed(self.message or 'Twilio API error: 400')


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def credential_store(kv) -> CredentialStore:
    return CredentialStore(kv)


@pytest.fixture
def material_store(kv) -> MaterialStore:
    return MaterialStore(kv)


@pytest.fixture
def audit_store(kv) -> AuditLogStore:
    return AuditLogStore(kv)


@pytest.fixture
def delivery_log_store(kv) -> DeliveryLogStore:
    return DeliveryLogStore(kv)


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def whatsapp_sender() -> FakeWhatsAppSender:
    return FakeWhatsAppSender()


@pytest.fixture
def services(credential_store, material_store, audit_store, delivery_log_store, email_sender, whatsapp_sender):
    """Wire in-memory stores and fake senders into the process-wide config"""
    config.credential_store = credential_store
    config.material_store = material_store
    config.audit_store = audit_store
    config.delivery_log_store = delivery_log_store
    config.email_sender = email_sender
    config.whatsapp_sender = whatsapp_sender
    yield config
    for name in ('credential_store', 'material_store', 'audit_store', 'delivery_log_store',
                 'email_sender', 'whatsapp_sender'):
        setattr(config, name, None)


@pytest_asyncio.fixture
async def client(services):
    """Async test client; the lifespan does not run, services come from the fixture"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def account_factory(credential_store):
    """Create accounts with a known password"""
    def _create(role: UserRole = UserRole.STUDENT, password: str = DEFAULT_PASSWORD, **overrides) -> Account:
        params = {
            'first_name': fake.first_name(),
            'last_name': fake.last_name(),
            'email': fake.free_email(),
            'role': role,
            'password': password,
            'must_change_password': False,
        }
        if role == UserRole.STUDENT:
            params.update(academic_year=2024, current_semester=3, whatsapp_number='+919876543210')
        params.update(overrides)
        account, _ = AuthService.create_account(credential_store, **params)
        return account
    return _create


@pytest.fixture
def material_factory(material_store):
    """Store materials with sensible defaults"""
    def _create(uploaded_by: str = 'teacher-001', **overrides) -> Material:
        data = {
            'id': generate_material_id(),
            'title': fake.sentence(nb_words=4).rstrip('.'),
            'description': fake.sentence(),
            'fileName': 'notes.pdf',
            'fileSize': 2048,
            'fileType': 'application/pdf',
            'uploadedBy': uploaded_by,
            'uploadedByName': 'John Smith',
            'uploadDate': datetime.utcnow().isoformat(),
            'semester': 1,
            'academicYear': 2024,
            'subject': 'Computer Science',
            'tags': ['programming'],
            'isActive': True,
            'downloadCount': 0,
        }
        data.update(overrides)
        return material_store.save(Material(**data))
    return _create


@pytest.fixture
def auth_headers():
    """Bearer headers for an account"""
    def _headers(account: Account) -> dict:
        token = create_session_token(account.id, account.role.value)
        return {'Authorization': f'Bearer {token}'}
    return _headers
