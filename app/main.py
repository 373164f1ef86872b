from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.exceptions import RequestValidationError
from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from app.core import config
from app.core.database import engine, Base
from app.core.logging_config import setup_logging
from app.models import tables  # noqa: F401  (registers the tables on Base.metadata)
from app.routers import auth, properties, emails, inquiry, blog, reels, users
import logging
import os

setup_logging()
logger = logging.getLogger(__name__)

# The static mount needs the directory to exist at import time
os.makedirs(config.UPLOAD_DIR, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and log startup / shutdown"""
    logger.info("=" * 50)
    logger.info("🚀 Property Marketplace API Starting Up")
    logger.info("=" * 50)
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info(f"Database: {config.DATABASE_URL[:50]}...")
    logger.info(f"JWT Expiration: {config.ACCESS_TOKEN_EXPIRE_MINUTES} minutes")
    logger.info(f"Upload directory: {config.UPLOAD_DIR}")

    # ==========================================
    # 1. INITIALIZE DATABASE
    # ==========================================
    logger.info("Initializing database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized successfully")
    logger.info("=" * 50)

    yield

    logger.info("=" * 50)
    logger.info("🛑 Property Marketplace API Shutting Down")
    logger.info("=" * 50)


# ==========================================
# 2. SETUP APPLICATION
# ==========================================
app = FastAPI(
    title="Property Marketplace API",
    description="Listings, inquiries, reels and blog for a real-estate marketplace",
    version="1.0.0",
    lifespan=lifespan,
)

# ==========================================
# 3. CONFIGURE CORS (Security)
# ==========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,   # Who can call this API
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==========================================
# 4. ERROR ENVELOPE
# ==========================================
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Get the first error message from the list
    errors = exc.errors()
    error_message = errors[0].get("msg", "Invalid request").replace("Value error, ", "") if errors else "Invalid request"
    location = errors[0].get("loc", ()) if errors else ()
    field = location[-1] if location else None

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": error_message,
            "field": field,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "An unexpected error occurred"},
    )


# ==========================================
# 5. REGISTER ROUTERS
# ==========================================
# A. Authentication (Register, Login & Profile)
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])

# B. Properties (Public Search & Owner / Admin Management)
app.include_router(properties.router, prefix="/api/properties", tags=["Properties"])

# C. Inquiries (Public Forms & Admin Triage)
app.include_router(emails.router, prefix="/api/emails", tags=["Inquiries"])
app.include_router(inquiry.router, prefix="/api/inquiry", tags=["Inquiries"])

# D. Content
app.include_router(blog.router, prefix="/api/blog", tags=["Blog"])
app.include_router(reels.router, prefix="/api/reels", tags=["Reels"])

# E. Users & Team
app.include_router(users.router, prefix="/api/users", tags=["Users"])

# F. Uploaded files, served from the path stored on each record
app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


# ==========================================
# 6. HEALTH CHECK
# ==========================================
@app.get("/api/health", tags=["Health"])
def health_check():
    return {
        "success": True,
        "status": "active",
        "message": "Property Marketplace API is running successfully.",
    }
