"""Unit tests for API middleware components."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi import Request, Response

from warden.api.middleware.auth import (
    SKIP_AUTH_PATHS,
    AuthenticationMiddleware,
    Authenticator,
    StaticTokenAuthenticator,
)
from warden.api.middleware.context import RequestContextMiddleware
from warden.api.middleware.errors import EXCEPTION_MAP, ErrorHandlingMiddleware
from warden.authz.types import Principal
from warden.config.settings import Settings
from warden.core.context import get_current_context, get_current_context_or_none
from warden.core.exceptions import AccessDeniedError, AuthenticationError, ContextNotSetError


def make_request(path: str = "/v1/test", headers: dict | None = None, **app_state) -> MagicMock:
    request = MagicMock(spec=Request)
    request.url.path = path
    request.headers = headers or {}
    request.state = SimpleNamespace()
    request.app.state = SimpleNamespace(**app_state)
    return request


@pytest.fixture
def principal() -> Principal:
    return Principal(tenant_id=uuid4(), user_id=uuid4())


class TestStaticTokenAuthenticator:
    """Tests for StaticTokenAuthenticator."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(StaticTokenAuthenticator(), Authenticator)

    async def test_known_and_unknown_tokens(self, principal: Principal) -> None:
        authenticator = StaticTokenAuthenticator({"secret": principal})

        assert await authenticator.authenticate("secret") is principal
        assert await authenticator.authenticate("other") is None


class TestAuthenticationMiddleware:
    """Tests for AuthenticationMiddleware."""

    def test_skip_auth_paths_defined(self):
        """Verify health and docs endpoints skip authentication."""
        assert {"/health", "/metrics", "/docs", "/openapi.json"}.issubset(SKIP_AUTH_PATHS)

    @pytest.mark.asyncio
    async def test_missing_auth_header_returns_401(self):
        middleware = AuthenticationMiddleware(app=MagicMock())
        request = make_request(authenticator=StaticTokenAuthenticator())
        call_next = AsyncMock()

        response = await middleware.dispatch(request, call_next)

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        call_next.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_auth_format_returns_401(self):
        middleware = AuthenticationMiddleware(app=MagicMock())
        request = make_request(
            headers={"Authorization": "Basic abc"}, authenticator=StaticTokenAuthenticator()
        )
        call_next = AsyncMock()

        response = await middleware.dispatch(request, call_next)

        assert response.status_code == 401
        call_next.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_token_returns_401(self):
        middleware = AuthenticationMiddleware(app=MagicMock())
        request = make_request(
            headers={"Authorization": "Bearer nope"}, authenticator=StaticTokenAuthenticator()
        )
        call_next = AsyncMock()

        response = await middleware.dispatch(request, call_next)

        assert response.status_code == 401
        body = json.loads(response.body)
        assert body["error_code"] == "unauthorized"
        call_next.assert_not_called()

    @pytest.mark.asyncio
    async def test_valid_token_sets_principal(self, principal: Principal):
        middleware = AuthenticationMiddleware(app=MagicMock())
        request = make_request(
            headers={"Authorization": "bearer good"},
            authenticator=StaticTokenAuthenticator({"good": principal}),
        )
        call_next = AsyncMock(return_value=Response(status_code=200))

        response = await middleware.dispatch(request, call_next)

        assert response.status_code == 200
        assert request.state.principal is principal
        assert request.state.actor_id == principal.user_id
        assert request.state.tenant_id == principal.tenant_id
        call_next.assert_called_once()

    @pytest.mark.asyncio
    async def test_skipped_path_needs_no_token(self):
        middleware = AuthenticationMiddleware(app=MagicMock())
        request = make_request(path="/health")
        call_next = AsyncMock(return_value=Response(status_code=200))

        response = await middleware.dispatch(request, call_next)

        assert response.status_code == 200
        assert not hasattr(request.state, "principal")


class TestRequestContextMiddleware:
    """Tests for RequestContextMiddleware."""

    @pytest.mark.asyncio
    async def test_sets_context_for_principal(self, principal: Principal):
        middleware = RequestContextMiddleware(app=MagicMock())
        request = make_request()
        request.state.principal = principal
        correlation_id = uuid4()
        request.headers = {"X-Correlation-ID": str(correlation_id)}
        seen = {}

        async def call_next(_request):
            seen["ctx"] = get_current_context()
            return Response(status_code=200)

        response = await middleware.dispatch(request, call_next)

        ctx = seen["ctx"]
        assert ctx.tenant_id == principal.tenant_id
        assert ctx.actor_id == principal.user_id
        assert ctx.correlation_id == correlation_id
        assert ctx.request_id == request.state.request_id
        assert response.headers["X-Request-ID"] == str(request.state.request_id)
        assert response.headers["X-Correlation-ID"] == str(correlation_id)
        assert get_current_context_or_none() is None

    @pytest.mark.asyncio
    async def test_invalid_correlation_header_replaced(self, principal: Principal):
        middleware = RequestContextMiddleware(app=MagicMock())
        request = make_request(headers={"X-Correlation-ID": "not-a-uuid"})
        request.state.principal = principal

        response = await middleware.dispatch(
            request, AsyncMock(return_value=Response(status_code=200))
        )

        assert response.headers["X-Correlation-ID"] != "not-a-uuid"

    @pytest.mark.asyncio
    async def test_anonymous_request_has_no_context(self):
        middleware = RequestContextMiddleware(app=MagicMock())
        request = make_request(path="/health")
        seen = {}

        async def call_next(_request):
            seen["ctx"] = get_current_context_or_none()
            return Response(status_code=200)

        response = await middleware.dispatch(request, call_next)

        assert seen["ctx"] is None
        assert "X-Request-ID" in response.headers


class TestErrorHandlingMiddleware:
    """Tests for ErrorHandlingMiddleware."""

    def test_exception_map_status_codes(self):
        assert EXCEPTION_MAP[AuthenticationError][0] == 401
        assert EXCEPTION_MAP[ContextNotSetError][0] == 500
        assert AccessDeniedError not in EXCEPTION_MAP

    async def dispatch(self, exc: Exception, settings: Settings | None = None) -> Response:
        middleware = ErrorHandlingMiddleware(app=MagicMock())
        request = make_request(settings=settings or Settings(_env_file=None))
        request.state.request_id = uuid4()
        return await middleware.dispatch(request, AsyncMock(side_effect=exc))

    @pytest.mark.asyncio
    async def test_passes_through_success(self):
        middleware = ErrorHandlingMiddleware(app=MagicMock())
        response = await middleware.dispatch(
            make_request(), AsyncMock(return_value=Response(status_code=204))
        )

        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_access_denied_hides_reason(self):
        response = await self.dispatch(AccessDeniedError("no_grant", "students", "delete"))

        assert response.status_code == 403
        body = json.loads(response.body)
        assert body["error_code"] == "forbidden"
        assert body["details"] is None
        assert "no_grant" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_store_unavailable_is_503_by_default(self):
        response = await self.dispatch(
            AccessDeniedError("store_unavailable", "students", "read")
        )

        assert response.status_code == 503
        assert json.loads(response.body)["error_code"] == "service_unavailable"

    @pytest.mark.asyncio
    async def test_store_unavailable_can_be_403(self):
        response = await self.dispatch(
            AccessDeniedError("store_unavailable", "students", "read"),
            settings=Settings(_env_file=None, store_unavailable_status=403),
        )

        assert response.status_code == 403
        assert "store_unavailable" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_authentication_error(self):
        response = await self.dispatch(AuthenticationError("Not authenticated"))

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_context_error_is_500(self):
        response = await self.dispatch(ContextNotSetError())

        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_unexpected_error_envelope(self):
        response = await self.dispatch(RuntimeError("boom"))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["error_code"] == "internal_error"
        assert body["message"] == "Internal server error"
        assert "request_id" in body
        assert "timestamp" in body
