import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from admissions_scheduler.base.config import settings
from admissions_scheduler.base.error_handlers import register_exception_handlers
from admissions_scheduler.base.logging_config import app_logger as logger, request_id_var, user_id_var
from admissions_scheduler.db.session import init_db
from admissions_scheduler.routers import calendar, interviews, schedules, slots
from admissions_scheduler.routers.dependencies import get_engine, verify_api_key
from admissions_scheduler.services.engine import SchedulingEngine


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"🚀 {settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")
    yield
    if get_engine.cache_info().currsize:
        get_engine().shutdown()
    logger.info(f"🛑 {settings.PROJECT_NAME} stopped")


# --- FastAPI app instance ---
app = FastAPI(
    title="Admissions Interview Scheduler API",
    version=settings.SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# --- CORS config ---
origins = [
    "http://localhost:5173",     # Local admissions frontend
    "http://localhost:8080",     # API gateway
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Prometheus metrics ---
Instrumentator().instrument(app).expose(app)


# --- Logging middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request_token = request_id_var.set(request_id)
    user_token = user_id_var.set(request.headers.get("X-User-Id"))
    try:
        logger.info(f"📥 {request.method} request to {request.url}")
        response = await call_next(request)
        logger.info(f"📤 Response: {response.status_code} for {request.url}")
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        user_id_var.reset(user_token)
        request_id_var.reset(request_token)


# --- Exception handlers ---
register_exception_handlers(app)

# --- API Routers ---
secured = [Depends(verify_api_key)]
app.include_router(slots.router, prefix="/slots", tags=["Slots"], dependencies=secured)
app.include_router(interviews.router, prefix="/interviews", tags=["Interviews"], dependencies=secured)
app.include_router(calendar.router, prefix="/calendar", tags=["Calendar"], dependencies=secured)
app.include_router(schedules.router, prefix="/schedules", tags=["Schedules"], dependencies=secured)


# --- System endpoints ---
@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}


@app.get("/version", tags=["System"])
def version_check():
    return {
        "version": settings.SERVICE_VERSION,
        "environment": settings.ENVIRONMENT,
        "apiVersion": settings.API_VERSION,
    }


@app.get("/health/breakers", tags=["System"])
def breaker_status(engine: SchedulingEngine = Depends(get_engine)):
    return {"breakers": engine.guard.stats()}


@app.get("/health/cache", tags=["System"])
def cache_status(engine: SchedulingEngine = Depends(get_engine)):
    return engine.cache.stats()
