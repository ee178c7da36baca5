"""Tests for the Starlette authentication middleware."""

from typing import Any
from unittest.mock import AsyncMock, Mock

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from crowd_auth import (
    AuthRequest,
    BadRequestError,
    CrowdStrategy,
    Error,
    Fail,
    ProviderError,
    Success,
)
from crowd_auth.middleware import CrowdAuthenticationMiddleware, expand_brackets


async def login(request: Request) -> JSONResponse:
    return JSONResponse({"user": request.state.user})


async def home(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


def make_app(strategy: Any, **kwargs: Any) -> TestClient:
    app = Starlette(
        routes=[
            Route("/login", login, methods=["POST"]),
            Route("/", home),
        ]
    )
    app.add_middleware(CrowdAuthenticationMiddleware, strategy=strategy, **kwargs)
    return TestClient(app)


def mock_strategy(outcome: Any) -> Mock:
    strategy = Mock()
    strategy.name = "atlassian-crowd"
    strategy.authenticate = AsyncMock(return_value=outcome)
    return strategy


class TestCrowdAuthenticationMiddleware:
    """Test the authentication middleware."""

    def test_other_paths_pass_through(self) -> None:
        """Test paths outside the login paths are not authenticated."""
        strategy = mock_strategy(Fail())
        client = make_app(strategy)

        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "OK"
        strategy.authenticate.assert_not_called()

    def test_success_sets_user(self) -> None:
        """Test a successful outcome exposes the user to the handler."""
        strategy = mock_strategy(Success({"username": "alice"}))
        client = make_app(strategy)

        response = client.post("/login", data={"username": "alice", "password": "pw"})

        assert response.status_code == 200
        assert response.json() == {"user": {"username": "alice"}}

    def test_form_body_and_query_forwarded(self) -> None:
        """Test the strategy receives the form body and query string."""
        strategy = mock_strategy(Success("alice"))
        client = make_app(strategy, options={"bad_request_message": "Log in"})

        client.post("/login?next=/home", data={"username": "alice", "password": "pw"})

        auth_request, options = strategy.authenticate.call_args.args
        assert isinstance(auth_request, AuthRequest)
        assert auth_request.body == {"username": "alice", "password": "pw"}
        assert auth_request.query == {"next": "/home"}
        assert options == {"bad_request_message": "Log in"}

    def test_json_body_forwarded(self) -> None:
        """Test JSON bodies keep their nesting."""
        strategy = mock_strategy(Success("alice"))
        client = make_app(strategy)

        client.post("/login", json={"user": {"name": "alice", "password": "pw"}})

        auth_request = strategy.authenticate.call_args.args[0]
        assert auth_request.body == {"user": {"name": "alice", "password": "pw"}}

    def test_invalid_json_body_is_empty(self) -> None:
        """Test an unparseable JSON body is treated as empty."""
        strategy = mock_strategy(Fail(BadRequestError()))
        client = make_app(strategy)

        response = client.post(
            "/login",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 401
        assert strategy.authenticate.call_args.args[0].body == {}

    def test_missing_credentials_message(self) -> None:
        """Test missing credentials report their message."""
        client = make_app(mock_strategy(Fail(BadRequestError("Missing credentials"))))

        response = client.post("/login")

        assert response.status_code == 401
        assert response.json() == {"error": "Missing credentials"}

    def test_provider_rejection_is_generic(self) -> None:
        """Test provider failures do not leak provider details."""
        client = make_app(
            mock_strategy(Fail(ProviderError("authentication", 401, "INVALID_USER")))
        )

        response = client.post("/login", data={"username": "alice", "password": "x"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials"}

    def test_verify_info_message(self) -> None:
        """Test messages supplied by the verify callback are reported."""
        client = make_app(mock_strategy(Fail({"message": "Account disabled"})))

        response = client.post("/login", data={"username": "alice", "password": "x"})

        assert response.status_code == 401
        assert response.json() == {"error": "Account disabled"}

    def test_error_outcome(self) -> None:
        """Test error outcomes become 500 responses."""
        client = make_app(mock_strategy(Error(RuntimeError("boom"))))

        response = client.post("/login", data={"username": "alice", "password": "x"})

        assert response.status_code == 500
        assert response.json() == {"error": "Authentication error"}

    def test_custom_login_paths(self) -> None:
        """Test only configured paths are authenticated."""
        strategy = mock_strategy(Fail())
        client = make_app(strategy, login_paths=["/"])

        response = client.get("/")

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication failed"}

    def test_with_crowd_strategy(self) -> None:
        """Test the middleware end to end with a faked Crowd server."""

        def crowd(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/authentication"):
                return httpx.Response(200, json={"name": "alice", "email": "a@x.com"})
            return httpx.Response(200, json={"groups": [{"name": "eng"}]})

        def verify(profile: Any, done: Any) -> None:
            done(None, {"username": profile.username, "groups": profile.groups})

        strategy = CrowdStrategy(
            verify,
            {
                "providerUrl": "https://crowd.example.com/crowd",
                "retrieveGroupMemberships": True,
            },
            transport=httpx.MockTransport(crowd),
        )
        client = make_app(strategy)

        response = client.post("/login", data={"username": "alice", "password": "pw"})

        assert response.status_code == 200
        assert response.json() == {"user": {"username": "alice", "groups": ["eng"]}}

    def test_bracketed_form_fields_with_crowd_strategy(self) -> None:
        """Test nested field names work with HTML form posts."""
        crowd = Mock(
            side_effect=lambda request: httpx.Response(200, json={"name": "alice"})
        )
        strategy = CrowdStrategy(
            lambda profile, done: done(None, profile.username),
            {
                "providerUrl": "https://crowd.example.com/crowd",
                "usernameField": "user[name]",
                "passwordField": "user[pass]",
            },
            transport=httpx.MockTransport(crowd),
        )
        client = make_app(strategy)

        response = client.post("/login", data={"user[name]": "alice", "user[pass]": "pw"})

        assert response.status_code == 200
        assert response.json() == {"user": "alice"}
        crowd_request = crowd.call_args.args[0]
        assert crowd_request.url.params["username"] == "alice"

    def test_bracketed_query_fields_forwarded(self) -> None:
        """Test bracketed query keys are nested too."""
        strategy = mock_strategy(Success("alice"))
        client = make_app(strategy)

        client.post("/login?user[name]=alice&user[pass]=pw")

        auth_request = strategy.authenticate.call_args.args[0]
        assert auth_request.query == {"user": {"name": "alice", "pass": "pw"}}


class TestExpandBrackets:
    """Test nesting of bracketed form keys."""

    def test_flat_keys(self) -> None:
        """Test plain keys are kept as is."""
        assert expand_brackets([("username", "alice")]) == {"username": "alice"}

    def test_nested_keys(self) -> None:
        """Test bracketed keys become nested mappings."""
        items = [
            ("user[name]", "alice"),
            ("user[credentials][password]", "pw"),
            ("next", "/home"),
        ]

        assert expand_brackets(items) == {
            "user": {"name": "alice", "credentials": {"password": "pw"}},
            "next": "/home",
        }

    def test_later_keys_win(self) -> None:
        """Test a bracketed key replaces an earlier plain value."""
        items = [("user", "alice"), ("user[name]", "bob")]

        assert expand_brackets(items) == {"user": {"name": "bob"}}
