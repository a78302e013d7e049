from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import uvicorn
from sqlalchemy import text

# Import routers
from eventcheckin.api.routes import admin, attendees, auth, checkin, health, logs, register, reports, tokens
from eventcheckin.core.config import settings
from eventcheckin.core.exceptions import CheckInServiceError, RateLimited
from eventcheckin.core.logging import setup_logging
from eventcheckin.db.base import Base
from eventcheckin.db.session import SessionLocal, engine
# Register every table on Base.metadata before create_all
from eventcheckin.models import activity_log, attendee, checkin as checkin_model, registration_token, staff  # noqa: F401
from eventcheckin.services.registration import deactivate_expired_tokens
from eventcheckin.services.staff import ensure_bootstrap_admin

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT})...")

    # Create database tables
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    # Test database connection
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        logger.info("Database connection successful")

        ensure_bootstrap_admin(db)
        deactivate_expired_tokens(db)
    except Exception as e:
        logger.error(f"Database start-up failed: {e}", exc_info=True)
        raise
    finally:
        db.close()

    yield

    # Shutdown
    logger.info("Shutting down...")

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="QR event check-in with plus-guest tracking and token-gated walk-in registration",
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(CheckInServiceError)
async def checkin_service_error_handler(request: Request, exc: CheckInServiceError):
    """Render domain errors as {"error": code, "message": text}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")

    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(max(exc.retry_after, 0))}

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message},
        headers=headers,
    )

# Include routers
app.include_router(health.router, prefix=settings.API_PREFIX, tags=["Health"])
app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["Auth"])
app.include_router(register.router, prefix=settings.API_PREFIX, tags=["Registration"])
app.include_router(checkin.router, prefix=settings.API_PREFIX, tags=["Check-in"])
app.include_router(attendees.router, prefix=settings.API_PREFIX, tags=["Attendees"])
app.include_router(tokens.router, prefix=settings.API_PREFIX, tags=["Registration Tokens"])
app.include_router(admin.router, prefix=f"{settings.API_PREFIX}/admin", tags=["Admin"])
app.include_router(logs.router, prefix=settings.API_PREFIX, tags=["Activity Log"])
app.include_router(reports.router, prefix=settings.API_PREFIX, tags=["Reports"])

@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "operational",
        "docs": "/docs",
        "endpoints": {
            "health": "/api/health",
            "login": "/api/auth/login",
            "register": "/api/register",
            "checkin": "/api/checkin",
            "attendees": "/api/attendees",
            "registration_tokens": "/api/registration-tokens",
            "reports": "/api/reports/summary",
        },
    }

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=False)
