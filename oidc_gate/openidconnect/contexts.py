"""
Event contexts for the OpenID Connect lifecycle points.

Each context is created right before its callback fires and dropped after.
"""

from typing import Any, Dict, Optional
from starlette.requests import Request

from oidc_gate.authentication.contexts import BaseContext, BaseControlContext
from oidc_gate.authentication.ticket import AuthenticationProperties, AuthenticationTicket
from .message import OpenIdConnectMessage


class MessageReceivedContext(BaseControlContext):
    """Fired when a protocol message first reaches the callback path."""

    def __init__(self, request: Request, options: Any, protocol_message: OpenIdConnectMessage):
        super().__init__(request, options)
        self.protocol_message = protocol_message


class IdTokenReceivedContext(BaseControlContext):
    """Fired with the raw id token extracted from the protocol message."""

    def __init__(
        self,
        request: Request,
        options: Any,
        id_token: Optional[str] = None,
        protocol_message: Optional[OpenIdConnectMessage] = None,
    ):
        super().__init__(request, options)
        self.id_token = id_token
        self.protocol_message = protocol_message


class IdTokenValidatedContext(BaseControlContext):
    """Fired after the id token passed validation and a ticket was built."""

    def __init__(
        self,
        request: Request,
        options: Any,
        ticket: AuthenticationTicket,
        protocol_message: OpenIdConnectMessage,
    ):
        super().__init__(request, options)
        self.ticket = ticket
        self.protocol_message = protocol_message


class AuthorizationCodeReceivedContext(BaseControlContext):
    """
    Fired when the message carries an authorization code.

    Setting ``token_endpoint_response`` makes the handler skip its own
    redemption and use the supplied response instead.
    """

    def __init__(
        self,
        request: Request,
        options: Any,
        code: str,
        redirect_uri: str,
        protocol_message: OpenIdConnectMessage,
        ticket: Optional[AuthenticationTicket] = None,
    ):
        super().__init__(request, options)
        self.code = code
        self.redirect_uri = redirect_uri
        self.protocol_message = protocol_message
        self.ticket = ticket
        self.token_endpoint_response: Optional[OpenIdConnectMessage] = None

    @property
    def handled_code_redemption(self) -> bool:
        return self.token_endpoint_response is not None

    def handle_code_redemption(self, token_endpoint_response: OpenIdConnectMessage) -> None:
        self.token_endpoint_response = token_endpoint_response


class AuthorizationCodeRedeemedContext(BaseControlContext):
    """Fired after the code was exchanged at the token endpoint."""

    def __init__(
        self,
        request: Request,
        options: Any,
        code: str,
        token_endpoint_response: OpenIdConnectMessage,
        protocol_message: OpenIdConnectMessage,
    ):
        super().__init__(request, options)
        self.code = code
        self.token_endpoint_response = token_endpoint_response
        self.protocol_message = protocol_message


class UserInformationReceivedContext(BaseControlContext):
    """Fired with the claims returned by the user info endpoint."""

    def __init__(
        self,
        request: Request,
        options: Any,
        ticket: AuthenticationTicket,
        user: Dict[str, Any],
        protocol_message: OpenIdConnectMessage,
    ):
        super().__init__(request, options)
        self.ticket = ticket
        self.user = user
        self.protocol_message = protocol_message


class RedirectContext(BaseControlContext):
    """Fired before redirecting to the authorization or end-session endpoint."""

    def __init__(
        self,
        request: Request,
        options: Any,
        protocol_message: OpenIdConnectMessage,
        properties: Optional[AuthenticationProperties] = None,
    ):
        super().__init__(request, options)
        self.protocol_message = protocol_message
        self.properties = properties


class AuthenticationCompletedContext(BaseControlContext):
    """Fired once the callback produced a ticket."""

    def __init__(
        self,
        request: Request,
        options: Any,
        ticket: AuthenticationTicket,
        protocol_message: OpenIdConnectMessage,
    ):
        super().__init__(request, options)
        self.ticket = ticket
        self.protocol_message = protocol_message


class AuthenticationFailedContext(BaseControlContext):
    """
    Fired when processing the callback raised.

    The exception is re-raised after the callback returns unless the callback
    called ``handle_response()`` or ``skip_to_next_middleware()``.
    """

    def __init__(
        self,
        request: Request,
        options: Any,
        exception: BaseException,
        protocol_message: Optional[OpenIdConnectMessage] = None,
    ):
        super().__init__(request, options)
        self.exception = exception
        self.protocol_message = protocol_message
