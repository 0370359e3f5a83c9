"""FastAPI app: CORS, security headers, error envelope, routers."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text

from app.core.config import get_settings
from app.core.errors import register_error_handlers
from app.core.request_logging import RequestLoggingMiddleware
from app.core.deps import require_metrics_access
from app.core.metrics import get_metrics
from app.db.session import engine
from app.api.auth import router as auth_router
from app.api.admin import router as admin_router
from app.api.reverse_shares import router as reverse_shares_router

settings = get_settings()
if settings.log_json:
    request_logger = logging.getLogger("app.request")
    for h in request_logger.handlers[:]:
        request_logger.removeHandler(h)
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(message)s"))
    request_logger.addHandler(h)
    request_logger.setLevel(logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if not settings.clamav_url:
        logger.warning("CLAMAV_URL is not set: guest uploads will be accepted without an antivirus scan")
    if not settings.token_encryption_key:
        logger.error("TOKEN_ENCRYPTION_KEY is not set: reverse share invites will fail")
    yield
    await engine.dispose()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
register_error_handlers(app)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", settings.csrf_header_name, settings.guest_token_header_name],
)


@app.middleware("http")
async def security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none';"
    return response

app.include_router(auth_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(reverse_shares_router, prefix="/api")


@app.get("/healthz")
async def healthz():
    """Liveness: no auth, no DB."""
    return {"status": "ok"}


@app.get("/readyz")
async def readyz():
    """Readiness: light DB check."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception:
        logger.exception("Readiness check failed")
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "detail": "database unreachable"},
        )


@app.get("/metrics", response_class=Response)
async def metrics(_: None = Depends(require_metrics_access)):
    """Prometheus metrics. Guard via METRICS_REQUIRE_ADMIN=1 (admin auth) or METRICS_SECRET + X-Metrics-Secret header."""
    body, content_type = get_metrics()
    return Response(content=body, media_type=content_type)
