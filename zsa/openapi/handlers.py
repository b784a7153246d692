"""
Framework integration for OpenApiRouter.

``create_route_handlers`` returns one endpoint per HTTP method, suitable for
any Starlette-compatible framework. ``mount_router`` registers a catch-all
route on a FastAPI application; add it after the application's own routes.
"""

from collections.abc import Awaitable, Callable

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from ..utils.callables import check_callable
from ..utils.logger import logger
from .router import HTTP_METHODS, OpenApiRouter, ShapeError

Endpoint = Callable[[Request], Awaitable[Response]]


def create_route_handlers(
    router: OpenApiRouter, shape_error: ShapeError | None = None
) -> dict[str, Endpoint]:
    """Build one endpoint per supported HTTP method.

    Args:
        router: The router to dispatch to.
        shape_error: Optional ``(err, request) -> body | Response`` error shaper.

    Returns:
        Mapping of method name to async endpoint.
    """
    if shape_error is not None:
        check_callable(shape_error, ("err", "request"), "shape_error")

    async def endpoint(request: Request) -> Response:
        return await router.handle(request, shape_error=shape_error)

    return {method: endpoint for method in HTTP_METHODS}


def mount_router(
    app: FastAPI,
    router: OpenApiRouter,
    shape_error: ShapeError | None = None,
    path: str = "/{full_path:path}",
) -> None:
    """Serve ``router`` from ``app`` through a catch-all route.

    Args:
        app: FastAPI application instance.
        router: The router to serve; route templates are matched against the full path.
        shape_error: Optional error shaper forwarded to ``OpenApiRouter.handle``.
        path: Starlette path pattern the catch-all is registered under.
    """
    endpoint = create_route_handlers(router, shape_error)["GET"]
    app.router.add_route(path, endpoint, methods=list(HTTP_METHODS), include_in_schema=False)
    logger.info(f"Mounted {len(router.routes)} action routes under '{path}'")
