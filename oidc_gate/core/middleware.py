"""
Request pipeline integration: one handler instance per scheme per request.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional
from urllib.parse import urlparse
from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from oidc_gate.authentication.encoding import UrlEncoder, default_url_encoder
from oidc_gate.authentication.errors import (
    AuthenticationError,
    ConfigurationError,
    OpenIdConnectProtocolError,
)
from oidc_gate.authentication.handler import AuthenticationHandler
from oidc_gate.authentication.options import AuthenticationOptions
from oidc_gate.authentication.ticket import AuthenticationTicket
from oidc_gate.observability.logging import AuthLogger

logger = logging.getLogger("oidc_gate.middleware")


@dataclass
class SchemeRegistration:
    """A scheme's options plus a factory producing a fresh handler."""
    options: AuthenticationOptions
    handler_factory: Callable[[], AuthenticationHandler]

    @property
    def scheme(self) -> Optional[str]:
        return self.options.authentication_scheme


def build_handlers(
    registrations: List[SchemeRegistration],
    request: Request,
    url_encoder: UrlEncoder = default_url_encoder
) -> List[AuthenticationHandler]:
    """
    Construct and initialize one handler per registered scheme.

    Handlers are never reused across requests, so the memoized
    authentication outcome cannot leak between them.
    """
    handlers = []
    for registration in registrations:
        handler = registration.handler_factory()
        handler.initialize(
            registration.options,
            request,
            logging.getLogger(f"oidc_gate.handler.{registration.scheme or 'default'}"),
            url_encoder
        )
        handlers.append(handler)
    return handlers


def safe_redirect_target(target: Optional[str], request: Request) -> str:
    """Return ``target`` if it stays on this host, else ``/``."""
    if not target:
        return "/"
    parsed = urlparse(target)
    if not parsed.scheme and not parsed.netloc:
        return target if target.startswith("/") and not target.startswith("//") else "/"
    if parsed.scheme in ("http", "https") and parsed.netloc == request.url.netloc:
        return target
    return "/"


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Builds the per-request handlers and answers provider callbacks.

    Handlers are exposed to endpoints as ``request.state.authentication_handlers``.
    """

    def __init__(
        self,
        app: ASGIApp,
        registrations: List[SchemeRegistration],
        url_encoder: UrlEncoder = default_url_encoder
    ):
        super().__init__(app)
        self.registrations = registrations
        self.url_encoder = url_encoder
        self.auth_logger = AuthLogger()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        handlers = build_handlers(self.registrations, request, self.url_encoder)
        request.state.authentication_handlers = handlers
        request.state.request_id = request_id
        self.auth_logger.log_request_handlers(
            request_id,
            request.url.path,
            [handler.options.authentication_scheme for handler in handlers]
        )

        for handler in handlers:
            callback_path = getattr(handler.options, "callback_path", None)
            if callback_path and request.url.path == callback_path:
                response = await self._handle_callback(handler, request)
                if response is not None:
                    return response

        return await call_next(request)

    async def _handle_callback(
        self,
        handler: AuthenticationHandler,
        request: Request
    ) -> Optional[Response]:
        try:
            ticket = await handler.authenticate()
        except OpenIdConnectProtocolError as e:
            return JSONResponse(
                status_code=400,
                content={"detail": str(e), "error": e.error}
            )
        except ConfigurationError as e:
            logger.error(f"Authentication configuration error: {e}")
            return JSONResponse(
                status_code=500,
                content={"detail": "Authentication is not configured"}
            )
        except AuthenticationError as e:
            return JSONResponse(
                status_code=401,
                content={"detail": str(e)}
            )
        except Exception as e:
            logger.error(f"Callback processing error: {e}")
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"}
            )

        if handler.response is not None:
            return handler.response

        if ticket is None:
            return None

        return RedirectResponse(self._redirect_target(ticket, request), status_code=302)

    def _redirect_target(self, ticket: AuthenticationTicket, request: Request) -> str:
        target = ticket.properties.redirect_uri if ticket.properties else None
        return safe_redirect_target(target, request)
