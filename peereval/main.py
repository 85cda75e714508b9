from typing import Optional
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from .core.config import Settings, settings as default_settings
from .core.database import Database
from .api import auth, professors, courses, students, groups, assignments, evaluations, analytics
import logging
import sys

# Configure logging
logging.basicConfig(
    level=default_settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

API_TITLE = "Peer Evaluation API"
API_VERSION = "1.0.0"


def _validation_message(errors) -> str:
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP {exc.status_code} error on {request.url}: {exc.detail}")
        content = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(content))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
        logger.warning(f"Validation error on {request.url}: {errors}")
        return JSONResponse(
            status_code=400,
            content={"message": _validation_message(errors), "errors": errors}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "Internal server error"}
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info(f"Starting {API_TITLE}...")
        database = Database.from_settings(settings)
        app.state.db = database
        try:
            if settings.auto_create_tables:
                await database.create_tables()
            logger.info("Application startup completed successfully")
            yield
        except Exception as e:
            logger.error(f"Error during application startup: {e}")
            raise
        finally:
            logger.info(f"Shutting down {API_TITLE}...")
            await database.dispose()
            logger.info("Application shutdown completed")

    app = FastAPI(
        title=API_TITLE,
        description="Peer evaluation backend for university courses",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth.router, prefix="/api", tags=["Authentication"])
    app.include_router(professors.router, prefix="/api", tags=["Professors"])
    app.include_router(courses.router, prefix="/api", tags=["Courses"])
    app.include_router(students.router, prefix="/api", tags=["Students"])
    app.include_router(groups.router, prefix="/api", tags=["Groups"])
    app.include_router(assignments.router, prefix="/api", tags=["Evaluation Assignments"])
    app.include_router(evaluations.router, prefix="/api", tags=["Evaluations"])
    app.include_router(analytics.router, prefix="/api", tags=["Analytics"])

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint - API health check"""
        return {
            "message": f"{API_TITLE} is running",
            "version": API_VERSION,
            "status": "healthy"
        }

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": API_TITLE,
            "version": API_VERSION
        }

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests"""
        logger.info(f"Incoming request: {request.method} {request.url}")
        try:
            response = await call_next(request)
            logger.info(f"Request completed: {request.method} {request.url} - Status: {response.status_code}")
            return response
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url} - Error: {str(e)}")
            raise

    return app


app = create_app()
