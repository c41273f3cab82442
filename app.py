"""
StudyQ API: role-based study material distribution with email and WhatsApp delivery.
"""
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi_mail import FastMail, ConnectionConfig
from sqlalchemy import text

import config
from database.connection import Database
from database.kv_store import KeyValueStore, SqlKeyValueStore
from database.stores import CredentialStore, MaterialStore, AuditLogStore, DeliveryLogStore
from core.logger import logger
from middleware.security import (
    RateLimitMiddleware, SecurityHeadersMiddleware,
    setup_cors, setup_trusted_hosts
)
from services.notification_service import build_senders
from services.seed import seed_demo_data
from routers.auth import router as auth_router
from routers.users import router as users_router
from routers.materials import router as materials_router
from routers.deliveries import router as deliveries_router
from routers.audit import router as audit_router
from routers.settings import router as settings_router
from routers.functions import router as functions_router


def init_services(kv: KeyValueStore, mail: Optional[FastMail] = None):
    """Create the process-wide stores and channel senders on top of a key-value store."""
    config.credential_store = CredentialStore(kv)
    config.material_store = MaterialStore(kv)
    config.audit_store = AuditLogStore(kv)
    config.delivery_log_store = DeliveryLogStore(kv)
    config.email_sender, config.whatsapp_sender = build_senders(mail)


def _build_mail() -> Optional[FastMail]:
    """FastAPI-Mail client for SMTP fallback, or None without SMTP credentials."""
    if not (config.SMTP_USER and config.SMTP_PASSWORD):
        logger.warning("SMTP credentials not set (SMTP_USER/SMTP_PASSWORD). SMTP fallback disabled.")
        return None
    try:
        mail_conf = ConnectionConfig(
            MAIL_USERNAME=config.SMTP_USER,
            MAIL_PASSWORD=config.SMTP_PASSWORD,
            MAIL_FROM=config.SMTP_FROM_EMAIL or config.SMTP_USER,
            MAIL_FROM_NAME=config.SMTP_FROM_NAME,
            MAIL_PORT=config.SMTP_PORT,
            MAIL_SERVER=config.SMTP_HOST,
            MAIL_STARTTLS=config.SMTP_USE_TLS,
            MAIL_SSL_TLS=config.SMTP_USE_SSL,
            USE_CREDENTIALS=True,
            VALIDATE_CERTS=True,
        )
        mail = FastMail(mail_conf)
        logger.info("FastAPI-Mail initialized successfully")
        return mail
    except Exception as e:
        logger.error(f"Failed to initialize FastAPI-Mail: {e}", exc_info=True)
        return None


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for FastAPI app.
    Initialize database, stores and senders on startup.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {config.APP_NAME}...")
    logger.info("=" * 60)

    try:
        config.db = Database(
            database_url=config.DATABASE_URL,
            pool_size=config.DB_POOL_SIZE,
            max_overflow=config.DB_MAX_OVERFLOW
        )
        config.db.create_tables()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise

    config.mail = _build_mail()
    init_services(SqlKeyValueStore(config.db), config.mail)

    if config.SEED_DEMO_DATA:
        created = seed_demo_data(config.credential_store, config.material_store)
        if created["accounts"] or created["materials"]:
            logger.info(f"Demo data seeded: {created}")

    logger.info("=" * 60)
    logger.info("Server ready!")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info("API Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down...")
    if config.db:
        config.db.engine.dispose()
        logger.info("Database connections closed")


# Initialize FastAPI app
app = FastAPI(
    title=config.APP_NAME,
    description="Study material portal with role-based access and email/WhatsApp delivery",
    version=config.APP_VERSION,
    lifespan=lifespan
)

# Setup security middleware
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=config.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=config.RATE_LIMIT_PER_HOUR,
    enabled=config.RATE_LIMIT_ENABLED
)
setup_cors(app, config.CORS_ORIGINS)
if config.ENVIRONMENT == "production":
    setup_trusted_hosts(app, config.TRUSTED_HOSTS)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(materials_router)
app.include_router(deliveries_router)
app.include_router(audit_router)
app.include_router(settings_router)
app.include_router(functions_router)


@app.get("/")
async def root():
    """Root endpoint with API information. Public endpoint."""
    return {
        "message": config.APP_NAME,
        "version": config.APP_VERSION,
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "login": "POST /api/auth/login",
            "materials": "GET /api/materials",
            "deliveries": "POST /api/deliveries",
            "send_email": "POST /functions/v1/send-email",
            "send_whatsapp": "POST /functions/v1/send-whatsapp"
        },
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring. Public endpoint."""
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        if config.db is None:
            health_status["checks"]["database"] = {"status": "error", "error": "not initialized"}
            health_status["status"] = "degraded"
        else:
            with config.db.get_session() as db:
                db.execute(text("SELECT 1"))
            health_status["checks"]["database"] = {"status": "ok"}
    except Exception as e:
        health_status["checks"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"

    health_status["checks"]["stores"] = {"initialized": config.credential_store is not None}
    health_status["checks"]["email"] = {
        "configured": bool(config.email_sender and config.email_sender.is_configured)
    }
    health_status["checks"]["whatsapp"] = {
        "configured": bool(config.whatsapp_sender and config.whatsapp_sender.is_configured)
    }

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
