"""
OpenID Connect relying-party handler, events and options.
"""

from .backchannel import Backchannel, HttpxBackchannel
from .contexts import (
    AuthenticationCompletedContext,
    AuthenticationFailedContext,
    AuthorizationCodeReceivedContext,
    AuthorizationCodeRedeemedContext,
    IdTokenReceivedContext,
    IdTokenValidatedContext,
    MessageReceivedContext,
    RedirectContext,
    UserInformationReceivedContext,
)
from .events import LIFECYCLE_DESCRIPTIONS, LifecyclePoint, OpenIdConnectEvents
from .handler import OpenIdConnectHandler
from .message import OpenIdConnectMessage
from .options import DEFAULT_SCHEME, OpenIdConnectOptions

__all__ = [
    "AuthenticationCompletedContext",
    "AuthenticationFailedContext",
    "AuthorizationCodeReceivedContext",
    "AuthorizationCodeRedeemedContext",
    "Backchannel",
    "DEFAULT_SCHEME",
    "HttpxBackchannel",
    "IdTokenReceivedContext",
    "IdTokenValidatedContext",
    "LIFECYCLE_DESCRIPTIONS",
    "LifecyclePoint",
    "MessageReceivedContext",
    "OpenIdConnectEvents",
    "OpenIdConnectHandler",
    "OpenIdConnectMessage",
    "OpenIdConnectOptions",
    "RedirectContext",
    "UserInformationReceivedContext",
]
