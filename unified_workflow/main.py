"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from unified_workflow import __version__
from unified_workflow.api.errors import register_error_handlers
from unified_workflow.config import Settings
from unified_workflow.db.database import close_database, get_db, init_database
from unified_workflow.db.sqlite_store import SQLiteRepository
from unified_workflow.services.workflow_service import WorkflowService

settings = Settings.from_env()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    await init_database(settings.database_path)
    app.state.service = WorkflowService(SQLiteRepository(await get_db()), settings)
    logger.info(f"Workflow engine started (database={settings.database_path})")

    yield

    # Shutdown
    await app.state.service.close()
    await close_database()


app = FastAPI(
    title="Unified Workflow Engine",
    description="Template, hierarchy and instance management for multi-stage workflows",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware - allow any localhost port for local frontends
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^http://localhost(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Import and include routers after app is created to avoid circular imports
from unified_workflow.api import hierarchy, instances, templates  # noqa: E402

app.include_router(templates.router, prefix="/api/v1", tags=["templates"])
app.include_router(hierarchy.router, prefix="/api/v1", tags=["hierarchy"])
app.include_router(instances.router, prefix="/api/v1", tags=["instances"])
