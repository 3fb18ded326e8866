"""
Login Throttle - API Server

Hosts the login throttle engine for a FastAPI deployment: builds one
long-lived ThrottleService at startup, exposes it on app.state for the
login route guard, and mounts the operator endpoints.

Environment:
    LOGIN_THROTTLE_CONFIG   YAML config file (default config/login_throttle.yaml)
    SITE_NAME               Site label used in alert subjects
    SENDGRID_API_KEY / SMTP_*  Alert mail transport
    LOG_LEVEL, LOG_JSON     Logging
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file BEFORE other imports
load_dotenv()

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI

from config.loader import YamlConfigSource
from throttleguard.api import get_login_throttle_router
from throttleguard.middleware.request_context import RequestContextMiddleware
from throttleguard.services.collaborators import LoggingNotificationSink, StaticSiteInfo
from throttleguard.services.throttle_service import ThrottleService
from throttleguard.utils.email_sender import EmailSender, EmailSettings
from throttleguard.utils.structured_logger import setup_structured_logging, get_logger

setup_structured_logging(
    level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_JSON", "true").lower() == "true",
)
logger = get_logger(__name__)


def build_throttle_service(config_path: Optional[str] = None) -> ThrottleService:
    """Create the app-wide ThrottleService from config and environment"""
    email_settings = EmailSettings.from_env()
    if email_settings.is_configured:
        notification_sink = EmailSender(email_settings)
    else:
        logger.warning("No mail transport configured (SENDGRID_API_KEY / SMTP_HOST) - alerts will only be logged")
        notification_sink = LoggingNotificationSink()

    source = YamlConfigSource(config_path or os.getenv("LOGIN_THROTTLE_CONFIG"))
    return ThrottleService.from_config_source(
        source,
        notification_sink=notification_sink,
        site_info=StaticSiteInfo(os.getenv("SITE_NAME", "Login Throttle")),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting login throttle...")
    if getattr(app.state, "login_throttle", None) is None:
        app.state.login_throttle = build_throttle_service()
    yield
    logger.info("Shutting down...")


def create_app(service: Optional[ThrottleService] = None) -> FastAPI:
    """Build the FastAPI application, optionally around an existing service"""
    app = FastAPI(
        title="Login Throttle",
        description="Brute-force protection for login endpoints",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.login_throttle = service

    app.add_middleware(RequestContextMiddleware)
    app.include_router(get_login_throttle_router())

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint for load balancers"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8080))
    host = os.getenv("HOST", "127.0.0.1")

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(app, host=host, port=port, log_level="info")
