import os
import uuid
import logging
from pathlib import Path
from contextlib import asynccontextmanager

# ============================================
# Load .env FIRST, before settings are read
# ============================================
from dotenv import load_dotenv

# This file is at <root>/tutor_backend/main.py, so go up one level
PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

load_dotenv(dotenv_path=ENV_FILE)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from tutor_backend.ai.dedup import DuplicatePromptSuppressor
from tutor_backend.config.settings import TutorSettings, get_settings
from tutor_backend.database import build_engine, build_session_factory, init_models
from tutor_backend.errors import TutorError, ErrorCode, get_error_summary
from tutor_backend.realtime.kv_store import KeyValueStore, InMemoryKeyValueStore
from tutor_backend.realtime.rate_limit import SlidingWindowRateLimiter
from tutor_backend.routes import tutor
from tutor_backend.services.learner_store import SqlLearnerProfileStore, SqlAdaptiveContextProvider
from tutor_backend.services.llm_client import LLMClient
from tutor_backend.services.ops_metrics import OpsEventLog
from tutor_backend.services.quota_service import DailyQuotaTracker
from tutor_backend.services.student_context_service import StudentContextService
from tutor_backend.services.tutor_service import TutorService
from tutor_backend.services.usage_recorder import UsageRecorder

VERSION = "1.0.0"


def build_tutor_service(
    settings: TutorSettings,
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker,
    store: KeyValueStore,
    ops_log: OpsEventLog
) -> TutorService:
    """
    Wire the tutor pipeline.

    One KeyValueStore backs rate limits, quota, context cache and dedup;
    swap in a shared implementation to pool state across instances.
    """
    return TutorService(
        learner_limiter=SlidingWindowRateLimiter(
            store, settings.learner_rate_limit, settings.rate_window_seconds, namespace="learner"
        ),
        ip_limiter=SlidingWindowRateLimiter(
            store, settings.ip_rate_limit, settings.rate_window_seconds, namespace="ip"
        ),
        quota=DailyQuotaTracker(store),
        context_service=StudentContextService(
            SqlLearnerProfileStore(session_factory),
            SqlAdaptiveContextProvider(session_factory),
            cache=store,
            ttl_seconds=settings.context_ttl_seconds,
        ),
        dedup=DuplicatePromptSuppressor(store, window_seconds=settings.dedup_window_seconds),
        llm=LLMClient(http_client, settings),
        usage=UsageRecorder(ops_log, preview_sample_rate=settings.preview_sample_rate),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting tutor service...")
    settings = get_settings()
    settings.validate()
    logger.info(f"Settings: {settings.to_dict()}")

    engine = build_engine(settings.database_url, echo=settings.debug_sql)
    if settings.is_development:
        await init_models(engine)
    session_factory = build_session_factory(engine)
    http_client = httpx.AsyncClient(timeout=settings.timeout_seconds)

    ops_log = OpsEventLog()
    app.state.settings = settings
    app.state.ops_log = ops_log
    app.state.tutor_service = build_tutor_service(
        settings, http_client, session_factory, InMemoryKeyValueStore(), ops_log
    )
    logger.info("Tutor pipeline ready")

    yield

    logger.info("Shutting down tutor service...")
    await http_client.aclose()
    await engine.dispose()
    logger.info("HTTP client and database engine closed")


app = FastAPI(
    title="ElevatED Tutor API",
    description="AI tutor request orchestration for the K-12 learning platform",
    version=VERSION,
    docs_url="/docs" if os.getenv("ENVIRONMENT", "development") == "development" else None,
    redoc_url="/redoc" if os.getenv("ENVIRONMENT", "development") == "development" else None,
    lifespan=lifespan
)

origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]

allowed_origins = os.getenv("ALLOWED_ORIGINS", "").split(",")
if allowed_origins and allowed_origins[0]:
    origins.extend(allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "type": error.get("type")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request body failed validation.",
            "code": ErrorCode.VALIDATION,
            "details": error_details
        }
    )


@app.exception_handler(TutorError)
async def tutor_error_handler(request: Request, exc: TutorError):
    logger.warning(f"Tutor error on {request.url.path}: {exc.code} - {exc.message}")
    return exc.to_response()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log_id = str(uuid.uuid4())[:8]
    logger.error(f"[{log_id}] Unhandled exception on {request.url.path}: {type(exc).__name__}: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal Error",
            "message": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
            "details": {"log_id": log_id}
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    settings = get_settings()
    return {
        "status": "healthy",
        "environment": settings.environment,
        "model_configured": bool(settings.api_key),
        "version": VERSION
    }


@app.get("/api/errors/health", tags=["Health"])
async def error_handling_health():
    return get_error_summary()


app.include_router(tutor.router)
