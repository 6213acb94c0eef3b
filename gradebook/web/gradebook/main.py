"""Main entry point for the grading API."""

import logging
import os
import typing as t
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware

from gradebook.core import BootConfiguration, di, GradebookContainer
from gradebook.core.config.web import GradebookWebSettings
from gradebook.errors import Forbidden, GradingError, LifecycleError, NotFoundError, StateConflict, \
    StudentGradingError, ValidationError
from gradebook.lib.json import FastAPIJSONResponse
from gradebook.model import DeploymentEnvironment

from .route import router
from .view.error import ErrorResponse, FieldErrorDetail

logger = logging.getLogger(__name__)

# most specific first; the first match wins
_status_codes: tuple[tuple[type[GradingError], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StudentGradingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (StateConflict, status.HTTP_409_CONFLICT),
    (LifecycleError, status.HTTP_409_CONFLICT),
    (Forbidden, status.HTTP_403_FORBIDDEN),
)


def _status_code(e: GradingError) -> int:
    for cls, code in _status_codes:
        if isinstance(e, cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _jsonable(value: t.Any) -> t.Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return str(value)


async def _grading_error_handler(request: Request, e: Exception) -> FastAPIJSONResponse:
    assert isinstance(e, GradingError)
    status_code = _status_code(e)
    body = ErrorResponse(
        error=e.code,
        message=e.message,
        details=[FieldErrorDetail(**d) for d in e.details] if isinstance(e, ValidationError) else None,
        context={k: _jsonable(v) for k, v in e.context.items()} or None,
    )
    if status_code == status.HTTP_403_FORBIDDEN:
        logger.info("request forbidden", extra={"path": request.url.path})
    return FastAPIJSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


async def _unhandled_error_handler(request: Request, e: Exception) -> FastAPIJSONResponse:
    logger.exception("unhandled error", extra={"path": request.url.path, "method": request.method})
    body = ErrorResponse(error="internal_error", message="internal server error")
    return FastAPIJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(mode="json", exclude_none=True)
    )


@di.inject
def _create_app(
    config: GradebookWebSettings = di.Provide["config.web.gradebook", di.as_(GradebookWebSettings)],
    env: DeploymentEnvironment = di.Provide["env"],
    root_path: Path = di.Provide["root"],
) -> FastAPI:
    app = FastAPI(
        title="Gradebook",
        description="Final grade computation for class offerings",
        version="0.1.0",
    )

    if env is DeploymentEnvironment.Local and config.frontend is not None:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[
                f"http://{config.frontend.host}:{config.frontend.port}",
                f"http://localhost:{config.frontend.port}",
            ],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(GradingError, _grading_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(router, prefix=config.api_prefix)
    return app


def create_app() -> FastAPI:
    """Factory function for uvicorn."""
    boot_vars = os.getenv("__Gradebook_BOOT")
    if boot_vars:
        boot_cf = BootConfiguration.model_validate_json(boot_vars)
        ct = GradebookContainer()
        GradebookContainer.boot(ct, **dict(boot_cf))
        ct.wire(modules=["gradebook.web.gradebook.main", "gradebook.auth.middleware"])
        return _create_app(
            config=GradebookWebSettings(**ct.config.web.gradebook()),
            env=boot_cf.env,
            root_path=t.cast(Path, ct.root()),
        )
    return _create_app()
