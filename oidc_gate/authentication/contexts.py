"""
Context objects passed to handlers and event callbacks.
"""

from enum import Enum
from typing import Any, Optional
from starlette.requests import Request
from starlette.responses import Response

from .ticket import AuthenticationProperties, AuthenticationTicket, ClaimsPrincipal


class EventResultState(str, Enum):
    """What the handler should do after an event callback returns."""
    CONTINUE = "continue"
    HANDLED_RESPONSE = "handled_response"
    SKIPPED = "skipped"


class BaseContext:
    """Request-scoped context carrying the request and the options in effect."""

    def __init__(self, request: Request, options: Any):
        self.request = request
        self.options = options


class BaseControlContext(BaseContext):
    """
    Context whose callback may take over the flow.

    A callback calls ``handle_response()`` to stop processing and answer the
    request itself (optionally via ``response``), or ``skip_to_next_middleware()``
    to let the rest of the pipeline run without a result. ``ticket`` may be
    set to supply or replace the authentication result.
    """

    def __init__(self, request: Request, options: Any):
        super().__init__(request, options)
        self.state = EventResultState.CONTINUE
        self.ticket: Optional[AuthenticationTicket] = None
        self.response: Optional[Response] = None

    def handle_response(self) -> None:
        self.state = EventResultState.HANDLED_RESPONSE

    def skip_to_next_middleware(self) -> None:
        self.state = EventResultState.SKIPPED

    @property
    def handled_response(self) -> bool:
        return self.state == EventResultState.HANDLED_RESPONSE

    @property
    def skipped(self) -> bool:
        return self.state == EventResultState.SKIPPED


class AuthenticateContext:
    """Authentication request for one scheme, filled in by the handler."""

    def __init__(self, authentication_scheme: Optional[str]):
        self.authentication_scheme = authentication_scheme
        self.accepted = False
        self.ticket: Optional[AuthenticationTicket] = None
        self.principal: Optional[ClaimsPrincipal] = None
        self.properties: Optional[AuthenticationProperties] = None
        self.error: Optional[BaseException] = None

    def authenticated(self, ticket: AuthenticationTicket) -> None:
        self.accepted = True
        self.ticket = ticket
        self.principal = ticket.principal
        self.properties = ticket.properties

    def not_authenticated(self) -> None:
        self.accepted = True

    def failed(self, error: BaseException) -> None:
        self.accepted = True
        self.error = error


class ChallengeContext:
    """Request to challenge the user agent for the given scheme."""

    def __init__(
        self,
        authentication_scheme: Optional[str],
        properties: Optional[AuthenticationProperties] = None,
    ):
        self.authentication_scheme = authentication_scheme
        self.properties = properties or AuthenticationProperties()
        self.accepted = False

    def accept(self) -> None:
        self.accepted = True


class SignOutContext:
    """Request to sign the user out of the given scheme."""

    def __init__(
        self,
        authentication_scheme: Optional[str],
        properties: Optional[AuthenticationProperties] = None,
    ):
        self.authentication_scheme = authentication_scheme
        self.properties = properties or AuthenticationProperties()
        self.accepted = False

    def accept(self) -> None:
        self.accepted = True
