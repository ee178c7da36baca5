"""Exceptions raised and reported by the Crowd authentication strategy."""


class CrowdAuthError(Exception):
    """Base exception for Crowd authentication errors."""

    pass


class ConfigurationError(CrowdAuthError, ValueError):
    """Invalid strategy or client configuration."""

    pass


class BadRequestError(CrowdAuthError):
    """Credentials are missing from the request.

    Reported as a failed authentication, never as an error.
    """

    def __init__(self, message: str = "Missing credentials"):
        super().__init__(message)
        self.message = message


class ProviderError(CrowdAuthError):
    """Crowd answered with a non-200 status."""

    def __init__(self, operation: str, status_code: int, body: str = ""):
        super().__init__(f"Crowd {operation} request failed with HTTP {status_code}")
        self.operation = operation
        self.status_code = status_code
        # Excerpt only
        self.body = body[:200]


class MalformedResponseError(CrowdAuthError):
    """Crowd answered 200 with a body that is not the expected JSON."""

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Malformed Crowd {operation} response: {reason}")
        self.operation = operation


class ProviderUnavailableError(CrowdAuthError):
    """The request to Crowd could not be completed (connect error, timeout)."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(
            f"Crowd {operation} request could not be completed: {type(cause).__name__}"
        )
        self.operation = operation
        self.__cause__ = cause


class CallbackError(CrowdAuthError):
    """The verification callback raised or returned without completing."""

    pass
