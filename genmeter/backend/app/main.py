# backend/app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import uuid

from app.core.config import settings
from app.core.exceptions import GenMeterError, ValidationError
from app.core.logging import logger
from app.db.database import init_db, close_db
from app.api.v1.router import api_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting GenMeter API")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down GenMeter API")
    await close_db()


app = FastAPI(
    title="GenMeter API",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
    redoc_url=("/api/redoc" if settings.ENVIRONMENT == "development" else None),
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.middleware("http")
async def request_log_middleware(request: Request, call_next):
    """Tag each request with an id and log one line when it finishes"""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000

    user_id = getattr(request.state, "user_id", None)
    logger.info(
        f"{request.method} {request.url.path} {response.status_code} {duration_ms:.1f}ms",
        extra={
            "request_id": request_id,
            **({"user_id": user_id} if user_id else {}),
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


# Include routers
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.exception_handler(GenMeterError)
async def genmeter_exception_handler(request: Request, exc: GenMeterError):
    """Domain errors carry their own status and code"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception("Unhandled exception while handling request", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "SERVER_ERROR", "message": "Internal server error"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters use the same error shape as domain errors"""
    error = ValidationError(details={"errors": jsonable_encoder(exc.errors())})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
