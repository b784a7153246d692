"""End-to-end tests of actions served by a FastAPI app through OpenApiRouter."""

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.responses import JSONResponse

from zsa import ErrorCode
from zsa.settings import settings

# ─── Input assembly ──────────────────────────────────────────────────────────


class TestInputAssembly:
    """Query, body and path parameters merge into one action input."""

    @pytest.mark.asyncio
    async def test_get_merges_query_and_path(self, client):
        response = await client.get("/api/posts/5", params={"include_comments": "true"})

        assert response.status_code == 200
        assert response.json() == {"id": 5, "title": "Post 5", "comments": []}

    @pytest.mark.asyncio
    async def test_path_param_wins_over_query(self, client):
        response = await client.get("/api/posts/5", params={"id": "99"})

        assert response.json()["id"] == 5

    @pytest.mark.asyncio
    async def test_path_param_wins_over_body(self, client):
        response = await client.put("/api/posts/9", json={"id": 1, "title": "renamed"})

        assert response.status_code == 200
        assert response.json() == {"id": 9, "title": "renamed"}

    @pytest.mark.asyncio
    async def test_non_object_body_passed_through(self, client):
        response = await client.post("/api/echo", json=[1, 2, 3])

        assert response.json() == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_non_object_body_with_query_rejected(self, client):
        response = await client.post("/api/echo", params={"a": "1"}, json=[1, 2, 3])

        assert response.status_code == 400
        assert response.json()["code"] == "INPUT_PARSE_ERROR"

    @pytest.mark.asyncio
    async def test_empty_body_uses_query_only(self, client):
        response = await client.post("/api/echo", params={"a": "1", "b": "2"})

        assert response.status_code == 200
        assert response.json() == {"a": "1", "b": "2"}

    @pytest.mark.asyncio
    async def test_repeated_query_keys_become_lists(self, client):
        response = await client.post("/api/echo?tag=a&tag=b")

        assert response.json() == {"tag": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_form_body(self, client):
        response = await client.post("/api/forms", data={"id": "3", "title": "from a form"})

        assert response.status_code == 200
        assert response.json() == {"id": 3, "title": "from a form"}


# ─── Responses ───────────────────────────────────────────────────────────────


class TestResponses:
    """Mapping of action results to HTTP responses."""

    @pytest.mark.asyncio
    async def test_response_meta_sets_status_and_headers(self, client):
        response = await client.post("/api/posts", json={"id": 4, "title": "fresh"})

        assert response.status_code == 201
        assert response.headers["location"] == "/api/posts/4"
        assert response.json() == {"id": 4, "title": "fresh"}

    @pytest.mark.asyncio
    async def test_none_result_is_json_null(self, client):
        response = await client.delete("/api/posts/4")

        assert response.status_code == 200
        assert response.json() is None

    @pytest.mark.asyncio
    async def test_returned_response_passes_through(self, client):
        response = await client.get("/api/download")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "id,title\n1,Post 1\n"

    @pytest.mark.asyncio
    async def test_own_app_routes_still_served(self, client):
        response = await client.get("/health")

        assert response.json() == {"status": "ok"}


# ─── Errors ──────────────────────────────────────────────────────────────────


class TestErrors:
    """Error codes surface with their mapped HTTP status."""

    @pytest.mark.asyncio
    async def test_unknown_path_is_404(self, client):
        response = await client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_wrong_method_is_405_with_allow(self, client):
        response = await client.patch("/api/posts", json={})

        assert response.status_code == 405
        assert response.headers["allow"] == "GET, POST"
        assert response.json()["code"] == "METHOD_NOT_SUPPORTED"

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self, client):
        response = await client.post(
            "/api/posts", content=b"<post/>", headers={"content-type": "application/xml"}
        )

        assert response.status_code == 405
        assert "application/json" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_malformed_json(self, client):
        response = await client.post(
            "/api/posts", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INPUT_PARSE_ERROR"

    @pytest.mark.asyncio
    async def test_validation_error_body(self, client):
        response = await client.post("/api/posts", json={"id": "x", "title": ""})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INPUT_PARSE_ERROR"
        assert set(body["fieldErrors"]) == {"id", "title"}
        assert body["formErrors"] == []
        assert "data" not in body

    @pytest.mark.asyncio
    async def test_procedure_error_code_mapped(self, client):
        response = await client.get("/api/me")

        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHORIZED"
        assert response.json()["message"] == "Sign in first"

    @pytest.mark.asyncio
    async def test_procedure_reads_request(self, client):
        response = await client.get("/api/me", headers={"Authorization": "Bearer secret"})

        assert response.status_code == 200
        assert response.json() == {"user": "ada"}

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_500(self, client):
        response = await client.get("/api/broken")

        assert response.status_code == 500
        assert response.json()["code"] == "ERROR"
        assert response.json()["message"] == "database unavailable"

    @pytest.mark.asyncio
    async def test_payload_too_large(self, client, monkeypatch):
        monkeypatch.setattr(settings, "max_body_bytes", 16)

        response = await client.post("/api/echo", json={"text": "x" * 64})

        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"

    @pytest.mark.asyncio
    async def test_error_data_hidden_when_disabled(self, client, monkeypatch):
        monkeypatch.setattr(settings, "expose_error_data", False)

        response = await client.get("/api/me")

        assert response.json() == {"code": "NOT_AUTHORIZED", "message": "Sign in first"}


# ─── Error shaping ───────────────────────────────────────────────────────────


class TestShapeError:
    """Custom error shaping hook."""

    @pytest.mark.asyncio
    async def test_shaped_body_keeps_mapped_status(self, app_factory):
        def shape(err):
            return {"error": {"kind": err.code.value, "detail": err.message}}

        app = app_factory(shape_error=shape)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/me")

        assert response.status_code == 401
        assert response.json() == {"error": {"kind": "NOT_AUTHORIZED", "detail": "Sign in first"}}

    @pytest.mark.asyncio
    async def test_shaped_response_used_verbatim(self, app_factory):
        async def shape(err, request):
            return JSONResponse({"path": request.url.path, "code": err.code.value}, status_code=418)

        app = app_factory(shape_error=shape)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/nothing-here")

        assert response.status_code == 418
        assert response.json() == {"path": "/api/nothing-here", "code": "NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_failing_shaper_falls_back_to_default_body(self, app_factory):
        def shape(err):
            raise RuntimeError("shaper bug")

        app = app_factory(shape_error=shape)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/me")

        assert response.status_code == 401
        assert response.json()["code"] == "NOT_AUTHORIZED"
        assert response.json()["message"] == "Sign in first"


# ─── Client ──────────────────────────────────────────────────────────────────


class TestZSAClient:
    """ZSAClient returns the same result contract over HTTP."""

    @pytest.mark.asyncio
    async def test_get_success(self, zsa_client):
        data, err = await zsa_client.get("/api/posts/2", {"include_comments": True})

        assert err is None
        assert data == {"id": 2, "title": "Post 2", "comments": []}

    @pytest.mark.asyncio
    async def test_post_success(self, zsa_client):
        result = await zsa_client.post("/api/posts", {"id": 8, "title": "via client"})

        assert result.is_success
        assert result.data == {"id": 8, "title": "via client"}

    @pytest.mark.asyncio
    async def test_error_rebuilt(self, zsa_client):
        data, err = await zsa_client.get("/api/me")

        assert data is None
        assert err.code is ErrorCode.NOT_AUTHORIZED
        assert err.message == "Sign in first"

    @pytest.mark.asyncio
    async def test_validation_error_rebuilt(self, zsa_client):
        _, err = await zsa_client.post("/api/posts", {"id": "x", "title": ""})

        assert err.code is ErrorCode.INPUT_PARSE_ERROR
        assert set(err.field_errors) == {"id", "title"}

    @pytest.mark.asyncio
    async def test_wrong_method_rebuilt(self, zsa_client):
        _, err = await zsa_client.delete("/api/download")

        assert err.code is ErrorCode.METHOD_NOT_SUPPORTED
