"""
OpenAPI exposure of server actions.

Example:
    from fastapi import FastAPI
    from zsa.openapi import OpenApiRouter, mount_router

    router = OpenApiRouter(path_prefix="/api").get("/posts/{id}", get_post)

    app = FastAPI()
    mount_router(app, router)
"""

from .handlers import create_route_handlers, mount_router
from .router import (
    HTTP_METHODS,
    OpenApiRouter,
    Route,
    RouteDefaults,
    RouteMatch,
    RouteMetadata,
)
from .templates import PathTemplate

__all__ = [
    "HTTP_METHODS",
    "OpenApiRouter",
    "PathTemplate",
    "Route",
    "RouteDefaults",
    "RouteMatch",
    "RouteMetadata",
    "create_route_handlers",
    "mount_router",
]
