from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router, landing_router
from app.database import init_db, async_session_factory
from app.jobs.scheduler import start_scheduler, shutdown_scheduler


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables on local SQLite databases (PostgreSQL uses Alembic)
    - Start background scheduler (referral expiry)
    """
    # Startup
    print(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()
        print("Background scheduler started")

    yield

    # Shutdown
    shutdown_scheduler()
    print("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Signup", "description": "Customer and partner signup with referral attribution"},
    {"name": "Referrals", "description": "Referral invites, code verification and analytics"},
    {"name": "Referral Landing", "description": "Public landing data for shared codes (/p, /c)"},
    {"name": "Admin", "description": "Commission payouts, referral overview and QR code issuance"},
]

API_DESCRIPTION = """
## Pawtrait Referrals API

Referral and commission backend for the pet-portrait storefront.

| Area | Description |
|------|-------------|
| **Signup** | Issues personal referral codes and records who referred each account |
| **Landing** | `/p/{code}` and `/c/{code}` count views and return referrer details |
| **Commissions** | Calculated when the payment webhook reports a paid order |
| **Admin** | Commission payouts, pre-registration QR codes, attribution integrity |

### Authentication

Bearer JWTs from the identity provider, with `sub` (account id) and
`account_type` (`partner`, `customer` or `admin`) claims.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 401 | Unauthorized - Invalid/expired token |
| 403 | Forbidden - Wrong account type |
| 404 | Not Found - Unknown referral code or record |
| 409 | Conflict - Email already registered |
| 410 | Gone - Referral code expired |
| 503 | Service Unavailable - Retry the request |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_router)
app.include_router(landing_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a JSON error body; details stay in the server log."""
    if isinstance(exc, HTTPException):
        status_code = exc.status_code
        error_message = exc.detail
    else:
        status_code = 500
        error_message = "Internal server error"
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    error_detail = {
        "error": error_message,
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    origin = request.headers.get("origin", "")

    response = JSONResponse(
        status_code=status_code,
        content=error_detail
    )

    # Add CORS headers if origin is allowed
    if origin in settings.cors_origins_list or "*" in settings.cors_origins_list:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"

    return response


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = "error"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
