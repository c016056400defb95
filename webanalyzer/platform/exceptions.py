import logging
from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from webanalyzer.platform.response import api_response


class WebAnalyzerError(Exception):
    """Base class for every error raised by the analysis pipeline."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


# ── Request-time errors ─────────────────────────


class UrlValidationError(WebAnalyzerError):
    """Bad URL syntax, disallowed scheme, excessive length or unknown capability."""

    status_code = status.HTTP_400_BAD_REQUEST


class HostNotAllowedError(WebAnalyzerError):
    """Host is, or resolves to, a private/reserved address (or did not resolve at all)."""

    status_code = status.HTTP_400_BAD_REQUEST


class AnalysisNotFoundError(WebAnalyzerError):
    status_code = status.HTTP_404_NOT_FOUND


class AnalysisNotReadyError(WebAnalyzerError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


# ── Record state machine ────────────────────────


class InvalidStatusTransition(WebAnalyzerError):
    def __init__(self, analysis_id: str, current, target):
        self.analysis_id = analysis_id
        self.current = current
        self.target = target
        super().__init__(
            f"Analysis {analysis_id}: cannot move from {getattr(current, 'value', current)} "
            f"to {getattr(target, 'value', target)}"
        )


# ── Worker-side errors ──────────────────────────


class OrchestrationError(WebAnalyzerError):
    """
    The job as a whole could not be processed.

    `retryable` tells the worker whether the queue's retry policy should
    re-attempt the job or give up straight away.
    """

    retryable = True

    def __init__(self, message: str = "", retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class RecordNotFoundError(OrchestrationError):
    retryable = False


class BrowserUnavailableError(OrchestrationError):
    pass


class PageLoadError(OrchestrationError):
    pass


class QueueError(WebAnalyzerError):
    """Transient failure talking to the queue backend."""


def add_exception_handlers(app):
    @app.exception_handler(WebAnalyzerError)
    async def webanalyzer_exception_handler(request: Request, exc: WebAnalyzerError):
        return api_response(message=exc.message or "Error", status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
