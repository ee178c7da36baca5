"""Atlassian Crowd username/password authentication strategy.

The strategy authenticates requests based on credentials submitted in the
request body or query string. Applications supply a ``verify`` callback which
receives the normalized Crowd profile and a ``done`` callback, and then calls
``done(error, user, info)`` with ``user`` set to something falsy if the
profile should be rejected. If an exception occurred, ``error`` should be set.

Example::

    async def verify(profile, done):
        user = await users.find_or_create(profile.username)
        done(None, user)

    strategy = CrowdStrategy(verify, {"providerUrl": "https://crowd.example.com/crowd"})
    outcome = await strategy.authenticate(AuthRequest(body=form))
"""

import inspect
from collections.abc import Mapping
from typing import Any

import httpx
import structlog

from .client import CrowdClient, ResponseHook
from .config import CrowdConfig
from .errors import (
    BadRequestError,
    CallbackError,
    MalformedResponseError,
    ProviderError,
    ProviderUnavailableError,
)
from .models import (
    Credentials,
    Error,
    Fail,
    NormalizedProfile,
    Outcome,
    Success,
    VerifyCallback,
)

logger = structlog.get_logger()


def lookup(obj: Any, field: str) -> Any:
    """Resolve a possibly nested field name such as ``user[name]`` in ``obj``.

    Descends one level per bracket group and returns the first non-container
    value on the chain, or None if the chain cannot be fully resolved.
    """
    if not obj:
        return None

    chain = field.replace("]", "").split("[")
    for prop in chain:
        if isinstance(obj, Mapping):
            value = obj.get(prop)
        elif isinstance(obj, list | tuple) and prop.isdigit() and int(prop) < len(obj):
            value = obj[int(prop)]
        else:
            return None

        if value is None:
            return None
        if not isinstance(value, Mapping | list | tuple):
            return value
        obj = value

    return None


def _credential(value: Any) -> str | None:
    # Booleans are not credentials even though bool is an int
    if isinstance(value, bool) or not isinstance(value, str | int):
        return None
    return str(value)


class _Attempt:
    """Single-fire outcome holder for one authentication attempt."""

    def __init__(self) -> None:
        self.outcome: Outcome | None = None

    def done(
        self, error: BaseException | None = None, user: Any = None, info: Any = None
    ) -> None:
        if self.outcome is not None:
            logger.warning("Ignoring repeated verify completion")
            return
        if error is not None:
            self.outcome = Error(error)
        elif not user:
            self.outcome = Fail(info)
        else:
            self.outcome = Success(user, info)


class CrowdStrategy:
    """Authenticates username/password credentials against Atlassian Crowd."""

    def __init__(
        self,
        verify: VerifyCallback | None,
        config: CrowdConfig | Mapping[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_response: ResponseHook | None = None,
    ):
        """Initialize the strategy.

        Args:
            verify: Callback making the final accept/reject decision
            config: CrowdConfig or a mapping of strategy options
            transport: Optional httpx transport used for provider calls
            on_response: Optional hook receiving each buffered provider response

        Raises:
            TypeError: If no verify callback is given
            ConfigurationError: If no provider URL is configured
        """
        if not callable(verify):
            raise TypeError(
                "atlassian-crowd authentication strategy requires a verify function"
            )
        if not isinstance(config, CrowdConfig):
            config = CrowdConfig.from_options(config or {})

        self.config = config
        self.name = config.provider_name
        self._verify = verify
        self.client = CrowdClient(config, transport=transport, on_response=on_response)

    def extract_credentials(self, request: Any) -> Credentials | None:
        """Look up username and password in the request body, then its query."""
        body = getattr(request, "body", None)
        query = getattr(request, "query", None)

        username = self._find(body, query, self.config.username_field)
        password = self._find(body, query, self.config.password_field)

        if not username or not password:
            return None
        return Credentials(username=username, password=password)

    @staticmethod
    def _find(body: Any, query: Any, field: str) -> str | None:
        return _credential(lookup(body, field)) or _credential(lookup(query, field))

    async def authenticate(
        self, request: Any, options: Mapping[str, Any] | None = None
    ) -> Outcome:
        """Authenticate a request against Crowd.

        Args:
            request: Object exposing ``body`` and ``query`` mappings
            options: Optional ``bad_request_message`` override

        Returns:
            Success, Fail or Error; exactly one per call
        """
        options = options or {}
        credentials = self.extract_credentials(request)
        if credentials is None:
            message = (
                options.get("bad_request_message")
                or options.get("badRequestMessage")
                or "Missing credentials"
            )
            logger.debug("Authentication failed - missing credentials")
            return Fail(BadRequestError(message))

        try:
            profile = await self._load_profile(credentials)
        except ProviderError as e:
            logger.warning(
                "Authentication failed - provider rejected request",
                username=credentials.username,
                operation=e.operation,
                status=e.status_code,
            )
            return Fail(e)
        except MalformedResponseError as e:
            logger.error(
                "Authentication failed - malformed provider response",
                username=credentials.username,
                operation=e.operation,
                error=str(e),
            )
            return Error(e)
        except ProviderUnavailableError as e:
            return Error(e)
        except Exception as e:
            logger.error(
                "Authentication failed - unexpected error",
                username=credentials.username,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Error(e)

        outcome = await self._run_verify(request, profile)
        logger.info(
            "Authentication finished",
            username=credentials.username,
            outcome=type(outcome).__name__,
            groups_count=len(profile.groups) if profile.groups is not None else None,
        )
        return outcome

    async def _load_profile(self, credentials: Credentials) -> NormalizedProfile:
        raw, data = await self.client.authenticate(
            credentials.username, credentials.password
        )
        profile = NormalizedProfile.from_crowd_user(self.name, raw, data)

        if self.config.retrieve_group_memberships:
            profile.groups = await self.client.get_direct_groups(credentials.username)

        return profile

    async def _run_verify(self, request: Any, profile: NormalizedProfile) -> Outcome:
        attempt = _Attempt()
        if self.config.pass_request_to_callback:
            args: tuple[Any, ...] = (request, profile, attempt.done)
        else:
            args = (profile, attempt.done)

        try:
            result = self._verify(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Verify callback raised",
                username=profile.username,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt.outcome is None:
                error = CallbackError(f"verify callback raised: {e}")
                error.__cause__ = e
                attempt.outcome = Error(error)

        if attempt.outcome is None:
            return Error(CallbackError("verify callback returned without calling done"))
        return attempt.outcome
