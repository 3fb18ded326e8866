"""
Login throttle guard for FastAPI login routes.

Usage:
    from throttleguard.middleware.login_guard import enforce_login_throttle, report_login_failure

    @app.post("/api/v1/auth/login")
    async def login(request: Request, body: LoginRequest,
                    source: str = Depends(enforce_login_throttle)):
        if not authenticate(body):
            report_login_failure(request)
            raise HTTPException(status_code=401, detail="Invalid credentials")
        ...

The service is read from ``request.app.state.login_throttle``; the host
creates it once at startup.
"""

from fastapi import HTTPException, Request

from throttleguard.services.login_throttle import normalize_source
from throttleguard.services.throttle_service import ThrottleService
from throttleguard.utils.structured_logger import get_logger, set_source_ip

logger = get_logger(__name__)

THROTTLED_DETAIL = "Too many login attempts. Please try again later."
DEFAULT_RETRY_AFTER = 60


def get_client_ip(request: Request) -> str:
    """Extract client IP, handling proxies.

    Returns an empty string when no address is available; the throttle
    maps that to its shared unknown-source bucket.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First hop is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return ""


def get_throttle_service(request: Request) -> ThrottleService:
    """Dependency: the app-wide ThrottleService"""
    service = getattr(request.app.state, "login_throttle", None)
    if service is None:
        raise RuntimeError("Login throttle service not configured on app.state.login_throttle")
    return service


def _throttled(service: ThrottleService, source: str) -> HTTPException:
    retry_after = DEFAULT_RETRY_AFTER
    try:
        retry_after = service.status(source)["retry_after_seconds"] or DEFAULT_RETRY_AFTER
    except Exception as e:
        logger.warning(f"Throttle status unavailable for {source}, using default Retry-After: {e}", exc_info=True)
    return HTTPException(
        status_code=429,
        detail=THROTTLED_DETAIL,
        headers={"Retry-After": str(retry_after)},
    )


async def enforce_login_throttle(request: Request) -> str:
    """
    Dependency for login routes: reject throttled sources with 429.

    Counts the attempt against the source and returns the source key.
    """
    service = get_throttle_service(request)
    source = normalize_source(get_client_ip(request))
    request.state.login_source = source
    set_source_ip(source)

    if service.is_throttled(source):
        logger.info(f"Login attempt from throttled source {source} rejected")
        raise _throttled(service, source)

    if not service.record_attempt(source):
        logger.info(f"Login attempt from {source} denied by throttle")
        raise _throttled(service, source)

    return source


def report_login_failure(request: Request) -> None:
    """Record a failed authentication for the request's source"""
    service = get_throttle_service(request)
    source = getattr(request.state, "login_source", None) or normalize_source(get_client_ip(request))
    service.record_failure(source)
