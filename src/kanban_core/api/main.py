"""Kanban Core FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..config import get_settings
from ..database import init_db
from ..errors import KanbanError
from .routers import auth, users, projects, issues, comments

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("kanban-core")

logger.info(f"Starting Kanban Core API ({settings.environment})")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        init_db()
        logger.info("Database tables ensured")
    yield


# Create FastAPI app
app = FastAPI(
    title="Kanban Core API",
    description="Multi-tenant issue tracking with Kanban boards",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KanbanError)
async def kanban_error_handler(request: Request, exc: KanbanError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}", exc_info=True)
    detail = "Internal server error"
    if not get_settings().is_production:
        detail = f"{detail}: {exc}"
    return JSONResponse(status_code=500, content={"detail": detail})


# Include all business logic routers with /api/v1 prefix
app.include_router(auth.router, prefix="/api/v1/auth")
app.include_router(users.router, prefix="/api/v1/users")
app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(issues.router, prefix="/api/v1/issues")
app.include_router(comments.router, prefix="/api/v1/comments")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Kanban Core API",
        "version": __version__,
        "docs": "/docs",
        "description": "Multi-tenant issue tracking with Kanban boards"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}
