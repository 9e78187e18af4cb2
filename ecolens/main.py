"""
Main FastAPI application for the EcoLens service
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from ecolens import __version__
from ecolens.config import settings
from ecolens.api import (
    system,
    detect,
    users,
    detections,
    transactions,
    analytics,
    admin
)
from ecolens.dependencies import get_storage
from ecolens.exceptions import EcoLensError
from ecolens.services.user_service import user_service

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting EcoLens service...")
    storage = get_storage()
    user = user_service.get_or_create_demo_user(storage)
    logger.info(f"Storage backend '{storage.name}' ready, demo user {user.id}")

    yield

    # Shutdown
    logger.info("Shutting down EcoLens service...")


app = FastAPI(
    title="EcoLens Service",
    description="Waste classification and Green Coin rewards",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EcoLensError)
async def ecolens_exception_handler(request: Request, exc: EcoLensError):
    """Business-rule rejections carry their flags to the client."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, not a 422."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "details": [
                {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")}
                for err in exc.errors()
            ]
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# Include routers
app.include_router(system.router, tags=["System"])
app.include_router(detect.router, prefix="/api", tags=["Detection"])
app.include_router(users.router, prefix="/api", tags=["Users"])
app.include_router(detections.router, prefix="/api", tags=["Detections"])
app.include_router(transactions.router, prefix="/api", tags=["Transactions"])
app.include_router(analytics.router, prefix="/api", tags=["Analytics"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "EcoLens",
        "version": __version__,
        "status": "running"
    }
