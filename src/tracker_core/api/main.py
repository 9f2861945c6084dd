"""Tracker Core FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routers import auth, projects, roadmap_templates, teams, users, work_items

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("tracker-core")

if not settings.secret_key:
    logger.warning("SECRET_KEY is not set; logins are disabled until it is configured")
logger.info("Starting Tracker Core API")

# Create FastAPI app
app = FastAPI(
    title="Tracker Core API",
    description="Projects, teams and work items with role-based access control",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth")
app.include_router(users.router, prefix="/api/users")
app.include_router(teams.router, prefix="/api/teams")
app.include_router(projects.router, prefix="/api/projects")
app.include_router(work_items.router, prefix="/api/work-items")
app.include_router(roadmap_templates.router, prefix="/api/roadmap-templates")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Tracker Core API",
        "version": "1.0.0",
        "authentication": "bearer",
        "docs": "/docs",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
