"""
FastAPI application for the PDF table extraction service.

Provides endpoints for:
- Uploading a PDF and indexing it in an OpenAI vector store
- Extracting tables, title-block fields and ids with a vision model
- Exporting extracted tables as an Excel workbook
"""

import logging

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings
from .models import HealthResponse
from .routers import ask, export, upload
from .services.document_client import get_document_client
from .services.exceptions import OperationCancelled, PipelineError
from .services.extraction import get_extraction_service
from .services.ingestion import get_ingestion_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting PDF Table Extraction Service...")
    # Initialize services on startup
    get_document_client()
    get_ingestion_service()
    get_extraction_service()
    logger.info("Services initialized successfully")
    yield
    logger.info("Shutting down PDF Table Extraction Service...")


# Create FastAPI application
app = FastAPI(
    title="PDF Table Extraction API",
    description="Upload engineering drawings, extract their tables with AI and export them to Excel",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health Endpoints
# =============================================================================


@app.get("/", response_model=HealthResponse)
async def root() -> HealthResponse:
    """Root endpoint - health check."""
    return HealthResponse(
        status="healthy", message="PDF Table Extraction API is running", version=__version__
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", message="Service is healthy", version=__version__)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(upload.router)
app.include_router(ask.router)
app.include_router(export.router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Render categorized failures as flat {ok: false, error, ...context} bodies."""
    if isinstance(exc, OperationCancelled):
        logger.info("%s %s: %s", request.method, request.url.path, exc.message)
    elif exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)

    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests in the same flat shape."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )
