"""Starlette middleware running the Crowd strategy on login requests."""

import json
from collections.abc import Iterable
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .errors import BadRequestError, ProviderError
from .models import AuthRequest, Error, Fail, Strategy, Success

logger = structlog.get_logger()


def expand_brackets(items: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Nest bracketed keys such as ``user[name]`` the way extended body parsers do.

    Later keys win when a plain key and a bracketed key collide.
    """
    result: dict[str, Any] = {}
    for key, value in items:
        chain = key.replace("]", "").split("[")
        target = result
        for prop in chain[:-1]:
            child = target.get(prop)
            if not isinstance(child, dict):
                child = {}
                target[prop] = child
            target = child
        target[chain[-1]] = value
    return result


async def build_auth_request(request: Request) -> AuthRequest:
    """Collect the form or JSON body and the query string of a Starlette request."""
    body: dict[str, Any] = {}
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict):
            body = payload
    elif content_type.startswith(
        ("application/x-www-form-urlencoded", "multipart/form-data")
    ):
        form = await request.form()
        body = expand_brackets(
            (key, value) for key, value in form.multi_items() if isinstance(value, str)
        )

    query = expand_brackets(request.query_params.multi_items())
    return AuthRequest(body=body, query=query)


def _failure_message(info: Any) -> str:
    if isinstance(info, BadRequestError):
        return info.message
    if isinstance(info, ProviderError):
        return "Invalid credentials"
    if isinstance(info, str) and info:
        return info
    if isinstance(info, dict) and info.get("message"):
        return str(info["message"])
    return "Authentication failed"


class CrowdAuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticates requests to login paths and exposes the user on request.state."""

    def __init__(
        self,
        app: Any,
        strategy: Strategy,
        login_paths: Iterable[str] = ("/login",),
        options: dict[str, Any] | None = None,
    ):
        super().__init__(app)
        self.strategy = strategy
        self.login_paths = set(login_paths)
        self.options = options or {}

    async def dispatch(self, request: Any, call_next: Any) -> Any:
        """Process request with authentication."""
        if request.url.path not in self.login_paths:
            return await call_next(request)

        auth_request = await build_auth_request(request)
        outcome = await self.strategy.authenticate(auth_request, self.options)

        if isinstance(outcome, Success):
            request.state.user = outcome.user
            request.state.auth_info = outcome.info
            logger.info(
                "Authentication successful",
                strategy=self.strategy.name,
                path=request.url.path,
            )
            return await call_next(request)

        if isinstance(outcome, Fail):
            logger.warning(
                "Authentication failed",
                strategy=self.strategy.name,
                path=request.url.path,
                reason=type(outcome.info).__name__ if outcome.info else None,
            )
            return JSONResponse(
                status_code=401, content={"error": _failure_message(outcome.info)}
            )

        error = outcome.error if isinstance(outcome, Error) else None
        logger.error(
            "Authentication error",
            strategy=self.strategy.name,
            path=request.url.path,
            error=str(error),
            error_type=type(error).__name__,
        )
        return JSONResponse(status_code=500, content={"error": "Authentication error"})
