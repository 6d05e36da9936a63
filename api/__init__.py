"""REST API module for the model marketplace.

This module provides HTTP endpoints for:
- Account signup and sign-in
- Uploading model files for moderation
- Admin moderation of pending models
- The public catalog and purchases
- Artist notifications

Every error response is a JSON body carrying a human-readable ``message``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from storage import asset_store, URL_PREFIX

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing API...")
    # Don't initialize DB here since it's handled in __main__.py
    asset_store.ensure_root()
    logger.info(f"Serving uploads from {asset_store.root}")

    yield

    logger.info("Shutting down API...")

# Create FastAPI app
app = FastAPI(
    title="Model Marketplace API",
    description="REST API for uploading, moderating and buying 3D model files",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {"message": ...} bodies."""
    content = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(content),
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "message": "Invalid request",
            "errors": jsonable_encoder(exc.errors())
        }
    )

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "message": "Internal server error",
            "error": str(exc)
        }
    )

@app.get("/")
async def root():
    return {
        "name": "Model Marketplace API",
        "version": "1.0.0",
        "status": "running"
    }

# Import and include all routers
from .auth import router as auth_router
from .upload import router as upload_router
from .models import router as models_router
from .notifications import router as notifications_router

app.include_router(auth_router, prefix="/api")
app.include_router(upload_router, prefix="/api")
app.include_router(models_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")

# Uploaded files; the directory is created on startup
app.mount(
    URL_PREFIX,
    StaticFiles(directory=str(asset_store.root), check_dir=False),
    name="uploads"
)
