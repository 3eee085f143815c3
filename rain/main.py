"""
Rain - Main FastAPI Application
Log bundle ingestion, file tree browsing and log search for support issues
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from rain.db.database import init_db, close_db
from rain.core.config import settings
from rain.core.logging import setup_logging
from rain.api.routes import issues, files, logs, uploads
from rain.api.exception_handlers import setup_exception_handlers
from rain.services.archive import shutdown_executor

setup_logging(level=settings.LOG_LEVEL, log_dir=settings.log_dir)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")
    settings.prepare_directories()
    logger.info(f"Data root: {settings.data_root.resolve()}")

    await init_db(reset=settings.RESET_DB)
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down")
    shutdown_executor()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    Rain collects diagnostic log bundles for support issues.

    Features:
    - Multipart uploads of log files and zip archives
    - Safe archive extraction into a browsable file tree
    - Line-level indexing and case-insensitive search of text logs
    """,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup centralized exception handlers
setup_exception_handlers(app)

# Include routers
app.include_router(issues.router, prefix="/api/issues", tags=["Issues"])
app.include_router(files.router, prefix="/api/files/v1", tags=["Files"])
app.include_router(logs.router, prefix="/api/log/v2", tags=["Logs"])
app.include_router(uploads.router, prefix="/api/uploads", tags=["Uploads"])


@app.get("/healthz")
async def health_check():
    """Liveness probe"""
    return {
        "status": "ok",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "rain.main:app",
        host=settings.BACKEND_HOST,
        port=settings.BACKEND_PORT,
        reload=settings.DEBUG
    )
