from datetime import datetime
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
from app.config import settings
from app.api import auth, users, posts, comments, upload, admin
from app.db.session import init_db, check_db_connection, close_db
from app.middleware.file_urls import FileURLMiddleware
from app.services.storage_service import StorageService, build_storage
from app.utils.errors import register_exception_handlers
from app.utils.rate_limit import limiter

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} ({settings.ENVIRONMENT})...")

    if app.state.storage is None:
        app.state.storage = build_storage(settings)
    logger.info(f"File storage backends: {list(app.state.storage.schemes) or 'none'}")

    try:
        await check_db_connection(settings.DATABASE_CONNECT_TIMEOUT)
        await init_db()
    except Exception as e:
        logger.error(f"Database connection failed: {e!r}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()

def create_app(storage: Optional[StorageService] = None) -> FastAPI:
    """
    Build the application.

    ``storage`` is normally left out and built from settings at startup;
    tests pass one in directly.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Forum API: posts, threaded comments, likes and cloud file storage",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )
    app.state.storage = storage

    # Add rate limiter; 429s go through the HTTPException handler
    app.state.limiter = limiter
    register_exception_handlers(app)

    app.add_middleware(FileURLMiddleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    prefix = settings.API_V1_PREFIX
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
    app.include_router(users.router, prefix=f"{prefix}/users", tags=["Users"])
    app.include_router(posts.router, prefix=f"{prefix}/posts", tags=["Posts"])
    app.include_router(comments.router, prefix=f"{prefix}/comments", tags=["Comments"])
    app.include_router(upload.router, prefix=f"{prefix}/upload", tags=["Upload"])
    app.include_router(admin.router, prefix=f"{prefix}/admin", tags=["Admin"])

    @app.get("/")
    async def root():
        """Root endpoint with API information"""
        return {
            "message": f"Welcome to {settings.PROJECT_NAME}",
            "version": settings.VERSION,
            "docs": "/api/docs",
            "redoc": "/api/redoc"
        }

    @app.get("/health")
    @limiter.limit("10/minute")
    async def health_check(request: Request):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "timestamp": datetime.utcnow().isoformat()
        }

    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.log_level.lower()
    )
