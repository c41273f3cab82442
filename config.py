"""
Configuration settings for the StudyQ study-material portal.
Supports both development and production environments via environment variables.
"""
import os
from pathlib import Path
from typing import Optional

# Load environment variables from .env file if it exists
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # python-dotenv not installed, skip

# ============================================================================
# Paths
# ============================================================================
BASE_DIR = Path(__file__).parent
LOGS_DIR = BASE_DIR / "logs"

# ============================================================================
# Database Configuration
# ============================================================================
_raw_url = os.getenv("DATABASE_URL", "sqlite:///./studyq.db")
# SQLAlchemy 2 loads dialect "postgresql", not "postgres"; normalize Heroku-style URLs
if _raw_url.startswith("postgres://"):
    DATABASE_URL = "postgresql://" + _raw_url[len("postgres://"):]
else:
    DATABASE_URL = _raw_url
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "20"))

# Key-value storage keys (one JSON document per store)
USERS_KEY = "study_platform_users"
MATERIALS_KEY = "study_platform_materials"
MATERIAL_FILES_KEY_PREFIX = "study_platform_material_file:"
AUDIT_LOGS_KEY = "study_platform_audit_logs"
DELIVERY_LOGS_KEY = "study_platform_delivery_logs"
MAX_LOG_ENTRIES = int(os.getenv("MAX_LOG_ENTRIES", "1000"))

# ============================================================================
# Security Configuration
# ============================================================================
SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-key-in-production")
ALGORITHM = "HS256"
SESSION_EXPIRE_MINUTES = int(os.getenv("SESSION_EXPIRE_MINUTES", "120"))
MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))  # Max failed login attempts before lockout
LOCKOUT_DURATION_MINUTES = int(os.getenv("LOCKOUT_DURATION_MINUTES", "15"))  # Account lockout duration
PASSWORD_MIN_LENGTH = 8
TEMP_PASSWORD_LENGTH = 12

# CORS Settings - include your frontend origin (e.g. Vite default 5173)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173,http://127.0.0.1:5173,http://127.0.0.1:8000").split(",") if o.strip()]
CORS_ALLOW_CREDENTIALS = True

# Trusted Hosts
TRUSTED_HOSTS = os.getenv("TRUSTED_HOSTS", "localhost,127.0.0.1").split(",")

# Rate Limiting
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))
RATE_LIMIT_PER_HOUR = int(os.getenv("RATE_LIMIT_PER_HOUR", "1000"))

# ============================================================================
# Materials
# ============================================================================
MAX_MATERIAL_SIZE_MB = int(os.getenv("MAX_MATERIAL_SIZE_MB", "10"))
ALLOWED_MATERIAL_EXTENSIONS = {".pdf", ".doc", ".docx", ".ppt", ".pptx", ".txt", ".jpg", ".jpeg", ".png"}
MAX_SEMESTER = 8
DOWNLOAD_LINK_EXPIRE_HOURS = int(os.getenv("DOWNLOAD_LINK_EXPIRE_HOURS", "24"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

# ============================================================================
# Delivery Providers
# ============================================================================
# SendGrid (email)
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@studyq.edu")
FROM_NAME = os.getenv("FROM_NAME", "StudyQ Platform")

# Twilio (WhatsApp)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER", "whatsapp:+14155238886")
TWILIO_API_BASE_URL = os.getenv("TWILIO_API_BASE_URL", "https://api.twilio.com/2010-04-01")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "15"))

# Remote edge functions; when set, senders call them over HTTP instead of the providers
FUNCTIONS_BASE_URL = os.getenv("FUNCTIONS_BASE_URL", "").rstrip("/")
FUNCTIONS_API_KEY = os.getenv("FUNCTIONS_API_KEY", "")

# Fallback recipients when a student has no contact on file
DEFAULT_DELIVERY_EMAIL = os.getenv("DEFAULT_DELIVERY_EMAIL", "studyq.library@gmail.com")
DEFAULT_DELIVERY_WHATSAPP = os.getenv("DEFAULT_DELIVERY_WHATSAPP", "+918653028954")

# ============================================================================
# Email Configuration (SMTP fallback when SendGrid is not configured)
# ============================================================================
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", SMTP_USER)
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", FROM_NAME)

# ============================================================================
# Application Settings
# ============================================================================
APP_NAME = os.getenv("APP_NAME", "StudyQ API")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")  # development, staging, production
SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "true").lower() == "true"
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# ============================================================================
# Global Instances (initialized at startup)
# ============================================================================
# Database instance (initialized in app.py)
db: Optional[object] = None

# Stores (initialized in app.init_services)
credential_store = None
material_store = None
audit_store = None
delivery_log_store = None

# FastMail instance for SMTP fallback (initialized in app.py)
mail: Optional[object] = None

# Channel senders (initialized in app.init_services)
email_sender = None
whatsapp_sender = None
