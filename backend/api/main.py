# backend/api/main.py
from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from typing import Optional

from api.schemas import LogSearchRequest
from config.settings import get_settings
from services.container import ServiceContainer
from services.errors import KeepWatchError
from services.time_window import require_time_filters

logger = logging.getLogger(__name__)

settings = get_settings()

# ============================================
# LIFESPAN EVENTS
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info(f"🚀 Starting {settings.APP_NAME}...")

    container = ServiceContainer.from_settings(settings)
    try:
        await container.connect()
        app.state.container = container
        logger.info("✅ All services initialized")
    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    yield

    logger.info("🔌 Shutting down...")
    await container.close()

# Create app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KeepWatchError)
async def keepwatch_error_handler(request: Request, exc: KeepWatchError):
    if exc.status_code >= 500:
        logger.error(f"❌ {exc.error}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message, "detail": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "message": "Invalid request", "detail": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container

# ============================================
# ENDPOINTS
# ============================================

@app.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)):
    """Health check"""
    search_ok = container.search_index is not None and container.search_index.is_available
    cache_ok = container.cache is not None and container.cache.is_available
    return {
        "status": "healthy",
        "services": {
            "primary_store": "connected",
            "search_index": "connected" if search_ok else "disabled",
            "cache": "connected" if cache_ok else "disabled",
        },
    }

# ============================================
# LOG INGESTION
# ============================================

@app.post("/api/v1/logs", status_code=201)
async def create_log(log_data: dict, container: ServiceContainer = Depends(get_container)):
    """Ingest a single log, or queue it for the stream worker when streaming is enabled"""
    if container.stream is not None:
        container.ingestion.processor.process(log_data)
        message_id = await container.stream.produce(log_data)
        return JSONResponse(status_code=202, content={"message": "Log queued", "messageId": message_id})

    log = await container.ingestion.store_log_message(log_data)
    return {"message": "Log created successfully", "log": log}

# ============================================
# LOG QUERY
# ============================================

@app.post("/api/v1/logs/{project_id}/search")
async def search_logs(
    project_id: str,
    body: LogSearchRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Search logs with phrase filters"""
    bounds = require_time_filters(body.lookbackTime, body.timeRange)
    page = await container.queries.search_logs(body.to_params(project_id, bounds))
    return page.to_dict()

# ============================================
# LOG DELETION
# ============================================

@app.delete("/api/v1/logs/{project_id}")
async def purge_logs(
    project_id: str,
    level: Optional[str] = None,
    environment: Optional[str] = None,
    lookbackTime: Optional[str] = Query(None),
    timeRange: Optional[str] = Query(None),
    container: ServiceContainer = Depends(get_container),
):
    """Delete logs matching the filters (lookbackTime deletes logs older than the window)"""
    deleted = await container.deletion.purge_logs(
        project_id,
        level=level,
        environment=environment,
        lookback_time=lookbackTime,
        time_range=timeRange,
    )
    return {"deletedCount": deleted}
