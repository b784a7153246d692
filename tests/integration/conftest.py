"""Fixtures serving sample actions through a FastAPI application."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from samples import PostInput
from starlette.responses import PlainTextResponse

from zsa import ZSAClient, ZSAError, create_server_action, create_server_action_procedure
from zsa.openapi import OpenApiRouter, RouteDefaults, mount_router

# ─── Sample actions ──────────────────────────────────────────────────────────


class GetPost(BaseModel):
    id: int
    include_comments: bool = False


def _load_post(input: GetPost) -> dict[str, Any]:
    post: dict[str, Any] = {"id": input.id, "title": f"Post {input.id}"}
    if input.include_comments:
        post["comments"] = []
    return post


def _create_post(input: PostInput, meta: Any) -> dict[str, Any]:
    meta.response_meta.status_code = 201
    meta.response_meta.headers["Location"] = f"/api/posts/{input.id}"
    return input.model_dump()


def _require_user(meta: Any) -> dict[str, Any]:
    token = meta.request.headers.get("authorization") if meta.request is not None else None
    if token != "Bearer secret":
        raise ZSAError("NOT_AUTHORIZED", "Sign in first")
    return {"user": "ada"}


def _explode() -> None:
    raise RuntimeError("database unavailable")


authed = create_server_action_procedure().handler(_require_user)

get_post = create_server_action().input(GetPost).handler(_load_post)
list_posts = create_server_action().handler(lambda: [{"id": 1, "title": "Post 1"}])
create_post = create_server_action().input(PostInput).handler(_create_post)
update_post = create_server_action().input(PostInput).handler(lambda input: input.model_dump())
delete_post = create_server_action().handler(lambda: None)
whoami = create_server_action(authed).handler(lambda ctx: ctx)
echo = create_server_action().handler(lambda input: input)
submit_form = create_server_action().input(PostInput).handler(lambda input: input.model_dump())
download = create_server_action().handler(lambda: PlainTextResponse("id,title\n1,Post 1\n"))
broken = create_server_action().handler(_explode)


def build_router() -> OpenApiRouter:
    posts = (
        OpenApiRouter(path_prefix="/api/posts", defaults=RouteDefaults(tags=["posts"]))
        .get("/", list_posts)
        .post("/", create_post, summary="Create a post")
        .get("/{id}", get_post)
        .put("/{id}", update_post)
        .delete("/{id}", delete_post)
    )
    misc = (
        OpenApiRouter(path_prefix="/api")
        .get("/me", whoami, protect=True)
        .post("/echo", echo)
        .post("/forms", submit_form, content_types=["application/x-www-form-urlencoded"])
        .get("/download", download)
        .get("/broken", broken)
    )
    return OpenApiRouter().extend(posts, misc)


# ─── Application fixtures ────────────────────────────────────────────────────


@pytest.fixture
def app_factory() -> Callable[..., FastAPI]:
    """Build a FastAPI app serving the sample router, optionally with an error shaper."""

    def factory(shape_error: Callable[..., Any] | None = None) -> FastAPI:
        app = FastAPI()

        @app.get("/health")
        async def health() -> dict[str, str]:
            return {"status": "ok"}

        mount_router(app, build_router(), shape_error=shape_error)
        return app

    return factory


@pytest.fixture
def app(app_factory: Callable[..., FastAPI]) -> FastAPI:
    """Application with the default error body."""
    return app_factory()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Plain httpx client over ASGI transport."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def zsa_client(app: FastAPI) -> AsyncGenerator[ZSAClient]:
    """ZSAClient over ASGI transport."""
    async with ZSAClient("http://test", transport=ASGITransport(app=app)) as zc:
        yield zc
