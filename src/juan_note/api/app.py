"""FastAPI application for the local REST facade."""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from juan_note import __version__
from juan_note.api import bulk, notes, states
from juan_note.api.docs import api_documentation
from juan_note.config import JuanNoteConfig, config
from juan_note.exceptions import JuanNoteError, LabelSerializationError, ValidationError
from juan_note.models.schema import BulkOperationResponse
from juan_note.observability import metrics
from juan_note.services.note_service import NoteService
from juan_note.utils import new_reference_id

logger = logging.getLogger(__name__)

SERVICE_NAME = "juan-note-api"


def _error_response(request: Request, message: str, status_code: int) -> JSONResponse:
    """Wrap an error in the envelope shape the route would have returned."""
    if request.url.path.startswith(bulk.BULK_PREFIX):
        content: Dict[str, Any] = BulkOperationResponse(
            success=False, errors=[message], error=message
        ).model_dump()
    else:
        content = {"success": False, "data": None, "error": message}
    return JSONResponse(status_code=status_code, content=content)


async def juan_note_error_handler(request: Request, exc: JuanNoteError) -> JSONResponse:
    if isinstance(exc, (ValidationError, LabelSerializationError)):
        return _error_response(request, exc.message, 400)
    error_id = new_reference_id()
    logger.error(
        f"[{exc.code.name}] [{error_id}] {request.method} {request.url.path}: {exc}",
        extra={"error_details": exc.to_dict()},
    )
    return _error_response(request, f"Internal server error (ref: {error_id})", 500)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:]) or "body"
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    return _error_response(request, "Invalid request: " + "; ".join(problems), 422)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error_id = new_reference_id()
    logger.error(
        f"Unexpected error [{error_id}] {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return _error_response(request, f"Internal server error (ref: {error_id})", 500)


def create_app(
    service: NoteService,
    app_config: Optional[JuanNoteConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: The note service every route delegates to.
        app_config: Settings for CORS and the documented base URL.
    """
    app_config = app_config or config
    app = FastAPI(title="Juan Note API", version=__version__)
    app.state.service = service

    # No authentication: keep the allowed origins to the desktop shell
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(JuanNoteError, juan_note_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(notes.router)
    app.include_router(states.router)
    app.include_router(bulk.router)

    @app.get("/")
    def root():
        base_url = f"http://{app_config.http_host}:{app_config.http_port}"
        return api_documentation(base_url, __version__)

    @app.get("/health")
    def health_check():
        database_ok = service.database.ping()
        return {
            "status": "ok" if database_ok else "degraded",
            "service": SERVICE_NAME,
            "version": __version__,
            "database": "ok" if database_ok else "unavailable",
            "metrics": metrics.get_summary(),
        }

    return app
