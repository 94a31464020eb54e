"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router
from .config import get_settings
from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    # Startup
    logger.info("Starting Label Verification API...")
    settings = get_settings()
    if settings.debug:
        logging.getLogger("labelcheck").setLevel(logging.DEBUG)

    deployments = settings.model_deployments()
    if settings.openai_endpoint and settings.openai_api_key and deployments:
        logger.info(f"Model endpoint configured - deployments: {', '.join(deployments)}")
    else:
        logger.warning("Model endpoint not configured - extraction requests will fail with 500")

    logger.info(f"API ready - Version {__version__}")

    yield

    # Shutdown
    logger.info("Shutting down Label Verification API...")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="""
## AI-Powered Alcohol Label Verification API

This API extracts alcohol label fields with a vision-language model and verifies them against application data.

### Features
- **Image Upload**: Upload label images (PNG, JPG, JPEG, WEBP) or send a base64 data URL
- **Multi-pass Extraction**: Two independent extraction passes, merged field by field
- **AI Evaluation**: Each pass is scored against the expected record
- **Field Report**: Pass / warn / fail per field with an overall status
- **Batch Processing**: Process multiple labels at once

### Quick Start
1. Use `/health` to check API status
2. Use `/extract-label` to extract fields from an image
3. Use `/verify` to verify a label against application data
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Configure CORS - restrict to allowed frontend origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Include routes
    app.include_router(router, prefix="/api/v1")

    # Root redirect to docs
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Label Verification API",
            "version": __version__,
            "docs": "/docs"
        }

    return app


# Create app instance
app = create_app()
