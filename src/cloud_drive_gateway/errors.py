"""Exceptions raised by the gateway and its drive adapters."""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every error the gateway raises on purpose."""


class ConfigNotSetError(GatewayError):
    """Raised when a drive's provider configuration is read before it is set."""


class AuthRequiredError(GatewayError):
    """Raised when a call needs credentials the request does not carry.

    The HTTP layer answers with a redirect to the provider's consent screen.
    """

    def __init__(self, provider: str, message: str = "Authorization required") -> None:
        super().__init__(message)
        self.provider = provider


class TokenRefreshFailedError(AuthRequiredError):
    """Raised when the refresh-token grant is rejected or unreachable."""


class InvalidProviderError(GatewayError):
    """Raised for a path prefix that names no supported provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Invalid provider: {provider!r}")
        self.provider = provider


class InvalidShareLinkError(GatewayError):
    """Raised when a share link is unknown, expired or unreadable."""


class BackendRequestFailedError(GatewayError):
    """Raised inside a drive session when the backend answers with an error."""

    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"Backend request failed {status_code}: {reason}")
        self.status_code = status_code
        self.reason = reason
