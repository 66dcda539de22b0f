"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.v1.router import api_router
from app.core.analysis_client import AnalysisClientRegistry, build_analysis_registry
from app.core.config import Settings, settings
from app.core.database import async_session_maker, close_database, db_client, init_database
from app.core.exceptions import AppError, NotFoundError, ValidationError
from app.pipeline.orchestrator import build_extraction_pipeline
from app.pipeline.runner import PipelineRunner
from app.services.artifact_validator import ArtifactValidator
from app.services.item_sink import ExtractionItemSink
from app.services.job_store import JobStore
from app.services.operation_log import OperationLog
from app.services.storage_service import StorageService, build_storage_service
from app.services.transcript_extraction_service import TranscriptExtractionService
from app.services.upload_service import UploadService
from app.utils.logging import get_logger
from app.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="healthy or degraded")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    database: dict = Field(default_factory=dict, description="Database health details")


def configure_services(
    app: FastAPI,
    session_factory: async_sessionmaker[AsyncSession],
    analysis: AnalysisClientRegistry,
    storage: StorageService,
    config: Settings = settings,
) -> PipelineRunner:
    """Build the service graph once and keep it on ``app.state``."""
    job_store = JobStore(session_factory)
    operation_log = OperationLog(session_factory)
    sink = ExtractionItemSink(session_factory)
    pipeline = build_extraction_pipeline(
        job_store,
        analysis,
        operation_log,
        session_factory,
        sink,
        stage_timeout_seconds=config.stage_timeout_seconds,
    )
    runner = PipelineRunner(pipeline)

    app.state.job_store = job_store
    app.state.runner = runner
    app.state.upload_service = UploadService(
        session_factory=session_factory,
        job_store=job_store,
        validator=ArtifactValidator(max_size_bytes=config.max_upload_size_bytes),
        storage=storage,
        runner=runner,
        analysis=analysis,
        default_models=config.pipeline.multi_model_providers,
    )
    app.state.transcript_extraction_service = TranscriptExtractionService(
        session_factory=session_factory,
        analysis=analysis,
        sink=sink,
        operation_log=operation_log,
    )
    return runner


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Missing provider credentials or storage configuration abort startup.
    """
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await init_database(auto_migrate=True)
    except Exception as e:
        LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})

    runner = configure_services(
        app,
        session_factory=async_session_maker,
        analysis=build_analysis_registry(settings),
        storage=build_storage_service(settings),
    )

    yield

    LOGGER.info("Shutting down application")
    await runner.shutdown()
    await close_database()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Ingestion and extraction pipeline for design week recordings, transcripts and documents",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)


def _error_response(request: Request, title: str, status_code: int, detail: str) -> JSONResponse:
    error_detail = create_error_detail(title=title, status=status_code, detail=detail, request=request)
    return JSONResponse(status_code=status_code, content=error_detail.model_dump(mode="json"))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    )
    return _error_response(request, "Invalid Request", status.HTTP_400_BAD_REQUEST, problems or "Invalid request")


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(request, "Validation Error", status.HTTP_400_BAD_REQUEST, exc.message)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(request, "Not Found", status.HTTP_404_NOT_FOUND, exc.message)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    LOGGER.error(
        f"Request failed: {type(exc).__name__}",
        extra={"path": request.url.path, "error": exc.message},
    )
    return _error_response(request, "Internal Server Error", status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_service_health_status",
)
async def health_check() -> HealthCheckResponse:
    db_health = await db_client.health_check()
    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health,
    )
