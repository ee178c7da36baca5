"""Atlassian Crowd username/password authentication strategy."""

from .client import CrowdClient
from .config import CrowdConfig, load_config_from_env
from .errors import (
    BadRequestError,
    CallbackError,
    ConfigurationError,
    CrowdAuthError,
    MalformedResponseError,
    ProviderError,
    ProviderUnavailableError,
)
from .models import (
    AuthRequest,
    Credentials,
    Error,
    Fail,
    NormalizedProfile,
    Outcome,
    ProfileName,
    Success,
)
from .strategy import CrowdStrategy, lookup

__version__ = "1.0.0"


# Import the middleware lazily so importing the strategy does not load Starlette
def __getattr__(name: str) -> object:
    if name == "CrowdAuthenticationMiddleware":
        from .middleware import CrowdAuthenticationMiddleware

        return CrowdAuthenticationMiddleware
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "AuthRequest",
    "BadRequestError",
    "CallbackError",
    "ConfigurationError",
    "Credentials",
    "CrowdAuthError",
    "CrowdAuthenticationMiddleware",
    "CrowdClient",
    "CrowdConfig",
    "CrowdStrategy",
    "Error",
    "Fail",
    "MalformedResponseError",
    "NormalizedProfile",
    "Outcome",
    "ProfileName",
    "ProviderError",
    "ProviderUnavailableError",
    "Success",
    "load_config_from_env",
    "lookup",
]
