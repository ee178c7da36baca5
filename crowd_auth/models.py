"""Authentication models and types."""

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class AuthRequest:
    """Request-shaped value carrying the submitted form/JSON body and query."""

    body: Mapping[str, Any] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class Credentials:
    """Username and password extracted from a single request."""

    username: str
    password: str = field(repr=False)


@dataclass
class ProfileName:
    """Structured name of a Crowd principal."""

    given_name: str | None = None
    family_name: str | None = None


@dataclass
class NormalizedProfile:
    """Provider-agnostic user record built from a Crowd authentication response."""

    provider: str
    id: str
    username: str
    display_name: str | None
    name: ProfileName
    email: str | None
    emails: list[dict[str, str]]
    raw: str
    json: dict[str, Any]
    groups: list[str] | None = None

    @classmethod
    def from_crowd_user(
        cls, provider: str, raw: str, data: dict[str, Any]
    ) -> "NormalizedProfile":
        """Map a Crowd user entity onto the normalized profile fields."""
        email = data.get("email")
        return cls(
            provider=provider,
            id=data["name"],
            username=data["name"],
            display_name=data.get("display-name"),
            name=ProfileName(
                given_name=data.get("first-name"),
                family_name=data.get("last-name"),
            ),
            email=email,
            emails=[{"value": email}] if email else [],
            raw=raw,
            json=data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render the profile in the passport-style shape used by host frameworks."""
        profile: dict[str, Any] = {
            "provider": self.provider,
            "id": self.id,
            "username": self.username,
            "displayName": self.display_name,
            "name": {
                "givenName": self.name.given_name,
                "familyName": self.name.family_name,
            },
            "email": self.email,
            "emails": [dict(entry) for entry in self.emails],
            "_raw": self.raw,
            "_json": self.json,
        }
        if self.groups is not None:
            profile["groups"] = list(self.groups)
        return profile


class Outcome:
    """Terminal result of one authentication attempt."""

    pass


@dataclass
class Success(Outcome):
    user: Any
    info: Any = None


@dataclass
class Fail(Outcome):
    info: Any = None


@dataclass
class Error(Outcome):
    error: BaseException


# done(error, user, info)
DoneCallback = Callable[..., None]

# verify(profile, done) or verify(request, profile, done); may be a coroutine function
VerifyCallback = Callable[..., Awaitable[None] | None]


class Strategy(Protocol):
    """Protocol for authentication strategies consumed by a host framework."""

    name: str

    async def authenticate(
        self, request: Any, options: Mapping[str, Any] | None = None
    ) -> Outcome:
        """Authenticate a request and return exactly one outcome."""
        ...
