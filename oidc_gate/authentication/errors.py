"""
Exception types raised by the authentication layer.
"""

from typing import Optional


class AuthenticationError(Exception):
    """Base class for authentication failures."""


class HandlerNotInitializedError(AuthenticationError):
    """Raised when a handler is used before (or initialized twice after) construction."""


class ConfigurationError(AuthenticationError):
    """Raised when required handler configuration or collaborators are missing."""


class OpenIdConnectProtocolError(AuthenticationError):
    """Raised when the identity provider returns an error or an unusable message."""

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
