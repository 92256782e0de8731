"""Litestar application factory for the compaction service API."""
import logging

from litestar import Litestar, Request, Response
from litestar.datastructures import State
from litestar.di import Provide
from litestar.exceptions import HTTPException
from litestar.static_files import create_static_files_router
from litestar.status_codes import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from compactflow.common.exceptions import InvalidJobRequest
from compactflow.service import CompactionService

from .controllers.core import CoreController
from .controllers.jobs import JobsController

logger = logging.getLogger(__name__)


async def get_service(state: State) -> CompactionService:
    return state.service


def error_response(message: str, status_code: int) -> Response:
    return Response({"error": message}, status_code=status_code)


def http_error_handler(request: Request, exc: HTTPException) -> Response:
    return error_response(exc.detail, exc.status_code)


def invalid_request_handler(request: Request, exc: InvalidJobRequest) -> Response:
    return error_response(str(exc), HTTP_400_BAD_REQUEST)


def internal_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    service: CompactionService = request.app.state.service
    service.event_log.error(
        f"Request {request.method} {request.url.path} failed: {exc}",
        error_type=type(exc).__name__,
    )
    return error_response(str(exc) or type(exc).__name__, HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(service: CompactionService) -> Litestar:
    """Create the Litestar application for the service.

    Args:
        service: The wired compaction service the handlers operate on.

    Returns:
        A Litestar application. Paths outside ``/api`` are served from
        ``static_dir`` when one is configured and answer 404 otherwise.
    """
    route_handlers = [CoreController, JobsController]

    static_dir = service.config.static_dir
    if static_dir is not None and static_dir.is_dir():
        route_handlers.append(
            create_static_files_router(path="/", directories=[static_dir], html_mode=True)
        )

    return Litestar(
        route_handlers=route_handlers,
        state=State({"service": service}),
        dependencies={"service": Provide(get_service)},
        exception_handlers={
            HTTPException: http_error_handler,
            InvalidJobRequest: invalid_request_handler,
            Exception: internal_error_handler,
        },
    )
