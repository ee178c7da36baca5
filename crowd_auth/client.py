"""Crowd REST API client for password authentication and group lookups."""

import base64
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from .config import CrowdConfig
from .errors import MalformedResponseError, ProviderError, ProviderUnavailableError

logger = structlog.get_logger()

AUTHENTICATION_PATH = "/rest/usermanagement/latest/authentication"
DIRECT_GROUPS_PATH = "/rest/usermanagement/latest/user/group/direct"

# on_response(operation, response), called once the body has been read
ResponseHook = Callable[[str, httpx.Response], None]


def resolve_base_url(provider_url: str) -> str:
    """Resolve the provider URL to the base used for REST calls.

    Anything not explicitly https is sent over plain http; https without a
    port goes to 443.
    """
    url = provider_url.strip()
    parts = urlsplit(url if "://" in url else f"http://{url}")
    scheme = "https" if parts.scheme == "https" else "http"
    return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/"), "", ""))


def basic_authorization(application_id: str, application_secret: str) -> str:
    """Build the Basic authorization header value for the Crowd application."""
    token = base64.b64encode(
        f"{application_id}:{application_secret}".encode()
    ).decode("ascii")
    return f"Basic {token}"


class CrowdClient:
    """Client for the Crowd user management REST API."""

    def __init__(
        self,
        config: CrowdConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        on_response: ResponseHook | None = None,
    ):
        """Initialize Crowd client.

        Args:
            config: Crowd provider settings
            transport: Optional httpx transport (custom networking, test fakes)
            on_response: Optional hook receiving each buffered provider response
        """
        self.config = config
        self.base_url = resolve_base_url(config.provider_url)
        self.timeout = config.timeout
        self.transport = transport
        self.on_response = on_response
        self.headers = {
            "Authorization": basic_authorization(
                config.application_id, config.application_secret
            ),
            "Accept": "application/json",
            "User-Agent": "crowd-auth/1.0.0",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _send(
        self,
        operation: str,
        method: str,
        path: str,
        params: dict[str, str],
        json_body: dict[str, Any] | None = None,
    ) -> tuple[str, Any]:
        """Send one request and return the buffered body text and parsed JSON.

        Raises:
            ProviderUnavailableError: If the exchange could not be completed
            ProviderError: On any non-200 status
            MalformedResponseError: If a 200 body is not valid JSON
        """
        start_time = time.time()
        try:
            async with self._client() as client:
                async with client.stream(
                    method, path, params=params, json=json_body
                ) as response:
                    # Buffer the whole body before parsing
                    await response.aread()
        except httpx.HTTPError as e:
            logger.error(
                f"Crowd {operation} request failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnavailableError(operation, e) from e

        duration_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(
            f"Crowd {operation} request completed",
            operation=operation,
            status=response.status_code,
            duration_ms=duration_ms,
        )

        if self.on_response is not None:
            self.on_response(operation, response)

        if response.status_code != 200:
            raise ProviderError(operation, response.status_code, response.text)

        try:
            return response.text, response.json()
        except ValueError as e:
            raise MalformedResponseError(operation, str(e)) from e

    async def authenticate(
        self, username: str, password: str
    ) -> tuple[str, dict[str, Any]]:
        """Validate a username/password pair against Crowd.

        Args:
            username: Principal name
            password: Password to check

        Returns:
            Raw response body and the parsed user entity
        """
        raw, data = await self._send(
            "authentication",
            "POST",
            AUTHENTICATION_PATH,
            params={"expand": "attributes", "username": username},
            json_body={"value": password},
        )

        if not isinstance(data, dict) or not data.get("name"):
            raise MalformedResponseError(
                "authentication", "user entity has no principal name"
            )

        return raw, data

    async def get_direct_groups(self, username: str) -> list[str]:
        """Get the names of groups the principal is a direct member of.

        Args:
            username: Principal name

        Returns:
            Group names in the order Crowd returned them
        """
        _, data = await self._send(
            "group membership",
            "GET",
            DIRECT_GROUPS_PATH,
            params={"username": username},
        )

        if not isinstance(data, dict) or not isinstance(data.get("groups", []), list):
            raise MalformedResponseError("group membership", "groups is not a list")

        groups = []
        for entry in data.get("groups", []):
            group = entry.get("GroupEntity", entry) if isinstance(entry, dict) else None
            if not isinstance(group, dict) or "name" not in group:
                raise MalformedResponseError(
                    "group membership", "group entry has no name"
                )
            groups.append(group["name"])

        logger.debug(
            "Crowd group membership resolved", username=username, groups_count=len(groups)
        )
        return groups
