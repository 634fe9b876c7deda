"""
Mila Web API - FastAPI application.

Serves the onboarding router under /api and maps onboarding errors to HTTP
responses. Uses Supabase Auth for authentication.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mila import __version__
from mila.config import settings
from onboarding.api import router as onboarding_router
from onboarding.errors import (
    InferenceFailure,
    InvalidAnswer,
    InvalidTransition,
    OnboardingError,
    ProfileNotInitialized,
    ProfileVersionConflict,
    ProviderTransportError,
    SessionConflict,
    SessionNotFound,
)

logger = logging.getLogger(__name__)

# Most specific first; anything unlisted is a 400
ERROR_STATUS: list[tuple[type[OnboardingError], int]] = [
    (SessionNotFound, 404),
    (ProfileNotInitialized, 409),
    (InvalidTransition, 409),
    (SessionConflict, 409),
    (ProfileVersionConflict, 409),
    (InvalidAnswer, 400),
    (InferenceFailure, 502),
    (ProviderTransportError, 502),
]


def status_for(error: OnboardingError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 400


app = FastAPI(title="Mila", version=__version__)


@app.on_event("startup")
async def startup_event():
    """Log configuration on startup."""
    from mila.llm.prompt_logger import is_enabled
    logger.info("Mila starting up...")
    logger.info(f"  Environment: {settings.mila_env}")
    logger.info(f"  Prompt file logging: {is_enabled()} (MILA_LOG_PROMPTS)")


# CORS middleware for the frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status}): {exc}")
    body = exc.to_dict()
    return JSONResponse(status_code=status, content=body)


app.include_router(onboarding_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
