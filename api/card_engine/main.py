from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import traceback
from card_engine.core.config import settings
from card_engine.core.database import init_db
from card_engine.core.exceptions import (
    CardEngineException,
    ValidationError,
    NotFoundError,
    ConflictError,
    AuthenticationError,
    AuthorizationError,
    PreconditionError,
    AIUnavailableError,
    UpstreamGenerationError,
    RegenerationTimeoutError,
    TransientStorageError,
    PublicIdExhaustedError,
)

# Import models to register them with SQLModel
from card_engine import models  # noqa: F401

# Import API router
from card_engine.api.v1 import api_router
from card_engine.api.v1.dependencies import get_regeneration_coordinator

logger = logging.getLogger(__name__)

app = FastAPI(title="Card Engine API", version="1.0.0")

# Most specific classes first; subclasses share a base with a different status
_STATUS_BY_EXCEPTION = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (AIUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PreconditionError, status.HTTP_400_BAD_REQUEST),
    (RegenerationTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (UpstreamGenerationError, status.HTTP_502_BAD_GATEWAY),
    (TransientStorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PublicIdExhaustedError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: CardEngineException) -> int:
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# Add exception handler for validation errors to log details
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with full details for debugging."""
    body = await request.body()
    logger.error(f"Validation error on {request.method} {request.url.path}")
    logger.error(f"Validation errors: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.errors(), "body": body.decode('utf-8') if body else None},
    )


# Add exception handler for custom application exceptions
@app.exception_handler(CardEngineException)
async def card_engine_exception_handler(request: Request, exc: CardEngineException):
    """Handle custom application exceptions."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"Application exception on {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    else:
        logger.warning(f"Application exception on {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    content = {"detail": str(exc), "type": type(exc).__name__}
    existing_card_id = getattr(exc, "existing_card_id", None)
    if existing_card_id:
        content["existingCardId"] = existing_card_id
    return JSONResponse(status_code=status_code, content=content)


# Add global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return a JSON 500."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)

    # In development, show full error details
    if settings.is_development:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            },
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal server error occurred. Please try again later.",
            "type": "InternalServerError"
        },
    )


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_db()


@app.on_event("shutdown")
async def shutdown_event():
    get_regeneration_coordinator().shutdown()


@app.get("/")
async def root():
    return {
        "message": "Card Engine API",
        "status": "running",
        "docs": {
            "swagger": "/docs",
            "redoc": "/redoc"
        }
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


# Include API router
app.include_router(api_router, prefix=settings.api_v1_prefix)
