"""
FastAPI Backend for the Sighting Report API

Citizen-science app backend: users post cetacean sightings with photos and
locations, admins moderate them. Admins authenticate with session cookies,
app users with bearer tokens obtained through Firebase.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sighting_api import __version__
from sighting_api.config import get_settings
from sighting_api.database.connection import close_engine, get_db, get_session_factory, ping_database
from sighting_api.errors import register_error_handlers
from sighting_api.logging_config import setup_logging
from sighting_api.routers import admins, auth, notifications, posts, species, user_auth, user_types, users
from sighting_api.services.status_catalog import StatusCatalog, load_status_catalog

logger = logging.getLogger(__name__)


def _load_catalog() -> StatusCatalog:
    try:
        db = get_session_factory()()
        try:
            return load_status_catalog(db)
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception("Could not load post statuses from the database, using the built-in list")
        return StatusCatalog.default()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    if getattr(app.state, "status_catalog", None) is None:
        app.state.status_catalog = _load_catalog()
    logger.info(f"Post statuses: {', '.join(app.state.status_catalog.names)}")
    yield
    close_engine()


# Initialize FastAPI app
app = FastAPI(
    title="Sighting Report API",
    description="API for citizen-science cetacean sighting reports and their moderation",
    version=__version__,
    docs_url="/api/docs",  # Swagger UI
    redoc_url="/api/redoc",  # ReDoc
    lifespan=lifespan,
)

# ============================================================================
# CORS Configuration - Allow the admin panel and app to call the API
# ============================================================================

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# ============================================================================
# Include Routers - Organize endpoints by resource
# ============================================================================

app.include_router(auth.router, prefix="/auth", tags=["Admin Auth"])
app.include_router(user_auth.router, prefix="/user-auth", tags=["User Auth"])
app.include_router(admins.router, prefix="/api/admins", tags=["Admins"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(user_types.router, prefix="/api/user-types", tags=["User Types"])
app.include_router(species.router, prefix="/api/species", tags=["Species"])
app.include_router(posts.router, prefix="/api/posts", tags=["Posts"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])

# ============================================================================
# Health Check Endpoints
# ============================================================================

@app.get("/api/health")
async def health_check():
    """Check if API is running"""
    return {"status": "healthy", "version": __version__}


@app.get("/api/health/db")
async def health_check_db(db: Session = Depends(get_db)):
    """Check the database answers"""
    ping_database(db)
    return {"status": "healthy", "database": "ok"}


@app.get("/")
async def root():
    """Root endpoint - points at the docs"""
    return {
        "message": "Sighting Report API",
        "docs": "/api/docs",
        "health": "/api/health"
    }
