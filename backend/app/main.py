import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from backend.app.api.deps import get_vault
from backend.app.api.v1.router import api_router
from backend.app.core.config import settings
from backend.app.core.errors import SecurePassError
from backend.app.core.logging import configure_logging
from backend.app.db import init_models

logger = logging.getLogger(__name__)


# --- LIFESPAN: logging, encryption key and tables before the first request ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Fail at boot, not on the first request, when the key is unusable
    get_vault()
    await init_models()
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Set up CORS
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# --- Error envelope: {"success": false, "message": ...} ---

@app.exception_handler(SecurePassError)
async def securepass_error_handler(request: Request, exc: SecurePassError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [str(err.get("msg", "")).replace("Value error, ", "") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "message": messages[0] if messages else "Validation failed",
            "errors": messages,
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/health")
def health():
    return {"status": "OK", "environment": settings.ENVIRONMENT}
