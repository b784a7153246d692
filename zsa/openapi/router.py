"""
OpenAPI router: exposes server actions as REST endpoints.

Routes are registered once at import time and read-only afterwards. A
request is matched by method and path template, its query string, body and
path parameters are merged into the action input (path parameters win),
the action is invoked and its ActionResult becomes the HTTP response.

Example:
    from zsa.openapi import OpenApiRouter

    posts = (
        OpenApiRouter(path_prefix="/api/posts", defaults=RouteDefaults(tags=["posts"]))
        .get("/{id}", get_post)
        .post("/", create_post, summary="Create a post")
    )
    router = OpenApiRouter().extend(posts, users)

    response = await router.handle(request)
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any, Self

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..action import ServerAction
from ..exceptions.domain import (
    DuplicateRouteError,
    ErrorCode,
    RouteConfigError,
    ZSAError,
)
from ..exceptions.http import get_status_code
from ..settings import settings
from ..types import ResponseMeta
from ..utils.callables import call_with_kwargs
from ..utils.logger import logger
from .templates import PathTemplate, join_paths

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
FORM_CONTENT_TYPES = frozenset({"application/x-www-form-urlencoded", "multipart/form-data"})

ShapeError = Callable[..., Any]


class RouteDefaults(BaseModel):
    """Defaults applied to every route registered on a router."""

    model_config = ConfigDict(frozen=True)

    content_types: list[str] | None = None
    tags: list[str] = Field(default_factory=list)
    protect: bool = False


class RouteMetadata(BaseModel):
    """Documentation and request-handling metadata of one route."""

    model_config = ConfigDict(frozen=True, extra="allow")

    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    description: str | None = None
    protect: bool = False
    content_types: list[str] = Field(default_factory=list)


class Route(BaseModel):
    """A (method, path template) binding to a server action."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str
    path: str
    template: PathTemplate
    action: ServerAction
    metadata: RouteMetadata


class RouteMatch(BaseModel):
    """A resolved route plus the values bound by its path template."""

    model_config = ConfigDict(frozen=True)

    route: Route
    params: dict[str, str]


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _collect(items: list[tuple[str, Any]]) -> dict[str, Any]:
    """Collapse multi-valued pairs into a dict; repeated keys become lists."""
    collected: dict[str, Any] = {}
    for key, value in items:
        if key not in collected:
            collected[key] = value
        elif isinstance(collected[key], list):
            collected[key].append(value)
        else:
            collected[key] = [collected[key], value]
    return collected


def _content_type(request: Request) -> str:
    return request.headers.get("content-type", "").split(";")[0].strip().lower()


class OpenApiRouter:
    """Registry of routes with request dispatch.

    Args:
        path_prefix: Prefix prepended to every path registered on this router.
        defaults: Content types, tags and protection applied to each route.
    """

    def __init__(self, path_prefix: str = "", defaults: RouteDefaults | None = None) -> None:
        self.path_prefix = join_paths(path_prefix, "") if path_prefix else ""
        self.defaults = defaults or RouteDefaults()
        self._routes: list[Route] = []
        self._keys: set[tuple[str, str]] = set()

    @property
    def routes(self) -> tuple[Route, ...]:
        """Registered routes in resolution order."""
        return tuple(self._routes)

    # ─── Registration ────────────────────────────────────────────────────────

    def register(self, method: str, path: str, action: ServerAction, **metadata: Any) -> Self:
        """Register ``action`` under ``method`` and ``path``.

        Args:
            method: HTTP method.
            path: Path template relative to the router prefix.
            action: The compiled server action.
            **metadata: ``tags``, ``summary``, ``description``, ``protect``,
                ``content_types`` and any extra documentation fields.

        Returns:
            Self for method chaining.

        Raises:
            RouteConfigError: On unknown methods, non-actions or bad templates.
            DuplicateRouteError: If an equivalent route is already registered.
        """
        method = method.upper()
        if method not in HTTP_METHODS:
            raise RouteConfigError(f"Unsupported HTTP method '{method}' for {path}")
        if not isinstance(action, ServerAction):
            raise RouteConfigError(
                f"Route {method} {path} must point at a ServerAction, got {type(action).__name__}"
            )

        template = PathTemplate(join_paths(self.path_prefix, path))
        tags = _dedupe([*self.defaults.tags, *metadata.pop("tags", [])])
        protect = metadata.pop("protect", None)
        content_types = (
            metadata.pop("content_types", None)
            or self.defaults.content_types
            or settings.default_content_types
        )
        route = Route(
            method=method,
            path=template.template,
            template=template,
            action=action,
            metadata=RouteMetadata(
                tags=tags,
                protect=self.defaults.protect if protect is None else protect,
                content_types=[c.lower() for c in content_types],
                **metadata,
            ),
        )
        self._add(route)
        logger.debug(f"Registered route {method} {route.path} -> action '{action.name}'")
        return self

    def _add(self, route: Route) -> None:
        key = (route.method, route.template.structure)
        if key in self._keys:
            raise DuplicateRouteError(route.method, route.path)
        self._keys.add(key)
        self._routes.append(route)

    def get(self, path: str, action: ServerAction, **metadata: Any) -> Self:
        return self.register("GET", path, action, **metadata)

    def post(self, path: str, action: ServerAction, **metadata: Any) -> Self:
        return self.register("POST", path, action, **metadata)

    def put(self, path: str, action: ServerAction, **metadata: Any) -> Self:
        return self.register("PUT", path, action, **metadata)

    def patch(self, path: str, action: ServerAction, **metadata: Any) -> Self:
        return self.register("PATCH", path, action, **metadata)

    def delete(self, path: str, action: ServerAction, **metadata: Any) -> Self:
        return self.register("DELETE", path, action, **metadata)

    def extend(self, *routers: OpenApiRouter) -> Self:
        """Append the routes of other routers, keeping their own prefixes.

        Raises:
            DuplicateRouteError: If a route collides with one already present.
        """
        for router in routers:
            for route in router.routes:
                self._add(route)
        return self

    # ─── Resolution ──────────────────────────────────────────────────────────

    def allowed_methods(self, path: str) -> list[str]:
        """Methods of every route whose template matches ``path``."""
        return _dedupe([r.method for r in self._routes if r.template.match(path) is not None])

    def resolve(self, method: str, path: str) -> RouteMatch:
        """Find the first route matching ``method`` and ``path``.

        Raises:
            ZSAError: NOT_FOUND if no template matches, METHOD_NOT_SUPPORTED if
                templates match but none for this method.
        """
        method = method.upper()
        path_matched = False
        for route in self._routes:
            params = route.template.match(path)
            if params is None:
                continue
            if route.method == method:
                return RouteMatch(route=route, params=params)
            path_matched = True

        if path_matched:
            raise ZSAError(
                ErrorCode.METHOD_NOT_SUPPORTED,
                message=f"Method {method} is not supported for {path}",
            )
        raise ZSAError(ErrorCode.NOT_FOUND, message=f"No route matches {method} {path}")

    # ─── Dispatch ────────────────────────────────────────────────────────────

    async def handle(self, request: Request, shape_error: ShapeError | None = None) -> Response:
        """Serve one HTTP request.

        Args:
            request: The incoming Starlette request.
            shape_error: Optional ``(err, request) -> body | Response`` used
                instead of the default error body.

        Returns:
            The HTTP response.
        """
        path = request.url.path
        try:
            match = self.resolve(request.method, path)
            action_input = await self._assemble_input(match, request)
        except ZSAError as err:
            return await self._error_response(request, err, shape_error)

        response_meta = ResponseMeta()
        result = await match.route.action(
            action_input, request=request, response_meta=response_meta
        )
        if result.error is not None:
            return await self._error_response(request, result.error, shape_error)

        if isinstance(result.data, Response):
            return result.data
        return JSONResponse(
            jsonable_encoder(result.data),
            status_code=response_meta.status_code,
            headers=response_meta.headers,
        )

    async def _assemble_input(self, match: RouteMatch, request: Request) -> Any:
        """Merge query parameters, body fields and path parameters, in that precedence."""
        action_input = _collect(list(request.query_params.multi_items()))

        if request.method.upper() in BODY_METHODS:
            body = await self._read_body(match.route, request)
            if isinstance(body, Mapping):
                action_input.update(body)
            elif body is not None:
                if action_input or match.params:
                    raise ZSAError(
                        ErrorCode.INPUT_PARSE_ERROR,
                        message="Request body must be an object when combined with "
                        "query or path parameters",
                    )
                return body

        action_input.update(match.params)
        return action_input

    async def _read_body(self, route: Route, request: Request) -> Any:
        raw = await request.body()
        if settings.max_body_bytes is not None and len(raw) > settings.max_body_bytes:
            raise ZSAError(
                ErrorCode.PAYLOAD_TOO_LARGE,
                message=f"Request body exceeds {settings.max_body_bytes} bytes",
            )
        if not raw:
            return None

        content_type = _content_type(request)
        if content_type not in route.metadata.content_types:
            raise ZSAError(
                ErrorCode.METHOD_NOT_SUPPORTED,
                message=f"Content-Type '{content_type or 'none'}' is not supported; "
                f"expected one of: {', '.join(route.metadata.content_types)}",
            )

        if content_type == "application/json" or content_type.endswith("+json"):
            try:
                return json.loads(raw)
            except ValueError as e:
                raise ZSAError(
                    ErrorCode.INPUT_PARSE_ERROR, e, message=f"Malformed JSON body: {e}"
                ) from e
        if content_type in FORM_CONTENT_TYPES:
            form = await request.form()
            return _collect(list(form.multi_items()))
        return raw.decode(errors="replace")

    async def _error_response(
        self, request: Request, err: ZSAError, shape_error: ShapeError | None
    ) -> Response:
        status_code = get_status_code(err.code)
        headers: dict[str, str] = {}
        if err.code is ErrorCode.METHOD_NOT_SUPPORTED:
            allowed = self.allowed_methods(request.url.path)
            if allowed:
                headers["Allow"] = ", ".join(allowed)

        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {err!r}")
        else:
            logger.debug(f"{request.method} {request.url.path} -> {status_code}: {err!r}")

        if shape_error is not None:
            try:
                shaped = await call_with_kwargs(shape_error, err=err, request=request)
                if not isinstance(shaped, Response):
                    shaped = JSONResponse(
                        jsonable_encoder(shaped), status_code=status_code, headers=headers
                    )
                return shaped
            except Exception as e:
                logger.error(
                    f"Error shaper failed for {request.method} {request.url.path}: {e}; "
                    "using the default error body"
                )

        return JSONResponse(
            err.to_dict(include_data=settings.expose_error_data),
            status_code=status_code,
            headers=headers,
        )

    def __repr__(self) -> str:
        return f"OpenApiRouter(prefix='{self.path_prefix}', routes={len(self._routes)})"
