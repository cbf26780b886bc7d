"""
Authentication handler base and shared types for oidc-gate.
"""

from .contexts import (
    AuthenticateContext,
    BaseContext,
    BaseControlContext,
    ChallengeContext,
    EventResultState,
    SignOutContext,
)
from .encoding import UrlEncoder, default_url_encoder
from .errors import (
    AuthenticationError,
    ConfigurationError,
    HandlerNotInitializedError,
    OpenIdConnectProtocolError,
)
from .handler import AuthenticationHandler
from .options import AuthenticationOptions
from .ticket import AuthenticationProperties, AuthenticationTicket, ClaimsPrincipal

__all__ = [
    "AuthenticateContext",
    "AuthenticationError",
    "AuthenticationHandler",
    "AuthenticationOptions",
    "AuthenticationProperties",
    "AuthenticationTicket",
    "BaseContext",
    "BaseControlContext",
    "ChallengeContext",
    "ClaimsPrincipal",
    "ConfigurationError",
    "EventResultState",
    "HandlerNotInitializedError",
    "OpenIdConnectProtocolError",
    "SignOutContext",
    "UrlEncoder",
    "default_url_encoder",
]
