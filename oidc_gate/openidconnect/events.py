"""
Lifecycle callbacks invoked by the OpenID Connect handler.

Applications customise the flow by assigning to the ``on_*`` slots, or by
subclassing and overriding the invocation methods. Every slot defaults to a
completed no-op. Callback failures propagate to the handler unchanged.
"""

import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

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

EventCallback = Callable[[Any], Union[Awaitable[None], None]]


class LifecyclePoint(str, Enum):
    """Named points in the flow where application code runs."""
    MESSAGE_RECEIVED = "message_received"
    AUTHORIZATION_CODE_RECEIVED = "authorization_code_received"
    AUTHORIZATION_CODE_REDEEMED = "authorization_code_redeemed"
    ID_TOKEN_RECEIVED = "id_token_received"
    ID_TOKEN_VALIDATED = "id_token_validated"
    USER_INFORMATION_RECEIVED = "user_information_received"
    REDIRECT_TO_AUTHENTICATION_ENDPOINT = "redirect_to_authentication_endpoint"
    REDIRECT_TO_END_SESSION_ENDPOINT = "redirect_to_end_session_endpoint"
    AUTHENTICATION_COMPLETED = "authentication_completed"
    AUTHENTICATION_FAILED = "authentication_failed"

    @property
    def slot(self) -> str:
        return f"on_{self.value}"


LIFECYCLE_DESCRIPTIONS: Dict[LifecyclePoint, str] = {
    LifecyclePoint.MESSAGE_RECEIVED: "A protocol message is first received.",
    LifecyclePoint.AUTHORIZATION_CODE_RECEIVED: "The message carries an authorization code.",
    LifecyclePoint.AUTHORIZATION_CODE_REDEEMED: "The code was redeemed at the token endpoint.",
    LifecyclePoint.ID_TOKEN_RECEIVED: "An id token was extracted from the message.",
    LifecyclePoint.ID_TOKEN_VALIDATED: "The id token passed validation.",
    LifecyclePoint.USER_INFORMATION_RECEIVED: "Claims were retrieved from the user info endpoint.",
    LifecyclePoint.REDIRECT_TO_AUTHENTICATION_ENDPOINT: "Before redirecting to the provider to sign in.",
    LifecyclePoint.REDIRECT_TO_END_SESSION_ENDPOINT: "Before redirecting to the provider to sign out.",
    LifecyclePoint.AUTHENTICATION_COMPLETED: "The callback produced a ticket.",
    LifecyclePoint.AUTHENTICATION_FAILED: "Processing the callback raised. Re-raised unless suppressed.",
}


async def _completed(context: Any) -> None:
    return None


async def _invoke(callback: EventCallback, context: Any) -> None:
    result = callback(context)
    if inspect.isawaitable(result):
        await result


class OpenIdConnectEvents:
    """Callback slots for each lifecycle point."""

    def __init__(
        self,
        on_message_received: Optional[EventCallback] = None,
        on_authorization_code_received: Optional[EventCallback] = None,
        on_authorization_code_redeemed: Optional[EventCallback] = None,
        on_id_token_received: Optional[EventCallback] = None,
        on_id_token_validated: Optional[EventCallback] = None,
        on_user_information_received: Optional[EventCallback] = None,
        on_redirect_to_authentication_endpoint: Optional[EventCallback] = None,
        on_redirect_to_end_session_endpoint: Optional[EventCallback] = None,
        on_authentication_completed: Optional[EventCallback] = None,
        on_authentication_failed: Optional[EventCallback] = None,
    ):
        self.on_message_received = on_message_received or _completed
        self.on_authorization_code_received = on_authorization_code_received or _completed
        self.on_authorization_code_redeemed = on_authorization_code_redeemed or _completed
        self.on_id_token_received = on_id_token_received or _completed
        self.on_id_token_validated = on_id_token_validated or _completed
        self.on_user_information_received = on_user_information_received or _completed
        self.on_redirect_to_authentication_endpoint = on_redirect_to_authentication_endpoint or _completed
        self.on_redirect_to_end_session_endpoint = on_redirect_to_end_session_endpoint or _completed
        self.on_authentication_completed = on_authentication_completed or _completed
        self.on_authentication_failed = on_authentication_failed or _completed

    # Mapping view

    def get_callback(self, point: LifecyclePoint) -> EventCallback:
        return getattr(self, LifecyclePoint(point).slot)

    def set_callback(self, point: LifecyclePoint, callback: Optional[EventCallback]) -> None:
        """Assign a callback to one lifecycle point. ``None`` restores the no-op."""
        setattr(self, LifecyclePoint(point).slot, callback or _completed)

    def is_overridden(self, point: LifecyclePoint) -> bool:
        return self.get_callback(point) is not _completed

    async def invoke(self, point: LifecyclePoint, context: Any) -> None:
        """Fire the invocation method for ``point``."""
        method = getattr(self, LifecyclePoint(point).value)
        await method(context)

    # Invocation methods

    async def message_received(self, context: MessageReceivedContext) -> None:
        await _invoke(self.on_message_received, context)

    async def authorization_code_received(self, context: AuthorizationCodeReceivedContext) -> None:
        await _invoke(self.on_authorization_code_received, context)

    async def authorization_code_redeemed(self, context: AuthorizationCodeRedeemedContext) -> None:
        await _invoke(self.on_authorization_code_redeemed, context)

    async def id_token_received(self, context: IdTokenReceivedContext) -> None:
        await _invoke(self.on_id_token_received, context)

    async def id_token_validated(self, context: IdTokenValidatedContext) -> None:
        await _invoke(self.on_id_token_validated, context)

    async def user_information_received(self, context: UserInformationReceivedContext) -> None:
        await _invoke(self.on_user_information_received, context)

    async def redirect_to_authentication_endpoint(self, context: RedirectContext) -> None:
        await _invoke(self.on_redirect_to_authentication_endpoint, context)

    async def redirect_to_end_session_endpoint(self, context: RedirectContext) -> None:
        await _invoke(self.on_redirect_to_end_session_endpoint, context)

    async def authentication_completed(self, context: AuthenticationCompletedContext) -> None:
        await _invoke(self.on_authentication_completed, context)

    async def authentication_failed(self, context: AuthenticationFailedContext) -> None:
        await _invoke(self.on_authentication_failed, context)
