import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from artmarket.core.config import settings
from artmarket.core.database import engine, Base
from artmarket.core.errors import AppError
from artmarket.core.scheduler import start_scheduler, stop_scheduler
from artmarket.api.routes import admin, artworks, auth, comments, exhibitions, galleries, orders, users
# Registers every table on Base.metadata
from artmarket import models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went very wrong!"

# Create database tables from all models that inherit from Base
# In production, use migrations (Alembic) instead of create_all
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: Start background scheduler for order sweeps and exhibition statuses
    Shutdown: Stop background scheduler
    """
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    yield
    if settings.SCHEDULER_ENABLED:
        stop_scheduler()


app = FastAPI(
    title="Art Gallery API",
    description="Marketplace for artworks, galleries and exhibitions",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware - allows frontend to make requests to backend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, message: str) -> JSONResponse:
    status = "fail" if 400 <= status_code < 500 else "error"
    return JSONResponse(status_code=status_code, content={"status": status, "message": message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    message = exc.message
    if not exc.operational and not settings.is_development:
        message = GENERIC_ERROR_MESSAGE
    return _error_response(exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))
    message = f"Invalid input data. {'. '.join(details)}"
    logger.info(f"{request.method} {request.url.path} -> 400: {message}")
    return _error_response(400, message)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"{request.method} {request.url.path} integrity error: {str(exc.orig)}")
    return _error_response(409, "Duplicate field value. Please use another value!")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    message = str(exc) if settings.is_development else GENERIC_ERROR_MESSAGE
    return _error_response(500, message)


# Register API route modules
# All routes are prefixed with /api for consistency
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(artworks.router, prefix="/api")
app.include_router(comments.router, prefix="/api")
app.include_router(galleries.router, prefix="/api")
app.include_router(exhibitions.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(admin.router, prefix="/api")

# Uploaded images are served from IMAGE_DIR under IMAGE_BASE_URL
app.mount(settings.IMAGE_BASE_URL, StaticFiles(directory=settings.IMAGE_DIR, check_dir=False), name="images")


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "Art Gallery API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}
