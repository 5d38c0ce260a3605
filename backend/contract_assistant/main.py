"""FastAPI application for the contract analysis service."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from contract_assistant.api.v1.router import api_router
from contract_assistant.core.config import settings
from contract_assistant.core.database import SessionLocal
from contract_assistant.core.errors import AnalysisError, ValidationError
from contract_assistant.queue.base import QueueBackend
from contract_assistant.queue.celery_backend import CeleryQueueBackend
from contract_assistant.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def analysis_error_handler(request: Request, exc: AnalysisError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": message, "code": ValidationError.code},
    )


def create_app(
    session_factory: Optional[sessionmaker] = None,
    queue: Optional[QueueBackend] = None,
) -> FastAPI:
    """Create the API application.

    Args:
        session_factory: Session factory for request sessions (defaults to SessionLocal)
        queue: Queue backend used by submissions (defaults to the Celery analysis queue)

    Returns:
        Configured FastAPI application
    """
    session_factory = session_factory or SessionLocal
    queue = queue or CeleryQueueBackend(session_factory, settings.ANALYSIS_QUEUE_NAME, celery_app)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        queue.start()
        yield
        queue.close()

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    app.state.session_factory = session_factory
    app.state.queue = queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AnalysisError, analysis_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/health")
    def health() -> dict:
        return {"status": "healthy"}

    return app


app = create_app()
