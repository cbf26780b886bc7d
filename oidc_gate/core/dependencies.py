"""
FastAPI dependency injection for oidc-gate.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, Request
from oidc_gate.authentication.contexts import AuthenticateContext
from oidc_gate.authentication.handler import AuthenticationHandler
from oidc_gate.authentication.ticket import AuthenticationTicket
from oidc_gate.core.middleware import SchemeRegistration

# Global registrations (will be initialized by the application)
_registrations: Optional[List[SchemeRegistration]] = None


def initialize_schemes(registrations: List[SchemeRegistration]) -> None:
    """
    Initialize the global scheme registrations.

    This should be called while the application is being created.
    """
    global _registrations
    _registrations = list(registrations)


def get_scheme_registrations() -> List[SchemeRegistration]:
    """Get the configured scheme registrations."""
    if _registrations is None:
        raise HTTPException(
            status_code=500,
            detail="Authentication schemes not initialized"
        )
    return _registrations


def get_handlers(request: Request) -> List[AuthenticationHandler]:
    """Get the handlers built for the current request."""
    handlers = getattr(request.state, "authentication_handlers", None)
    if handlers is None:
        raise HTTPException(
            status_code=500,
            detail="Authentication middleware not installed"
        )
    return handlers


def find_handler(
    handlers: List[AuthenticationHandler],
    scheme: Optional[str]
) -> Optional[AuthenticationHandler]:
    """Return the first handler responsible for ``scheme``."""
    for handler in handlers:
        if handler.should_handle_scheme(scheme):
            return handler
    return None


async def authenticate_scheme(
    handlers: List[AuthenticationHandler],
    scheme: Optional[str]
) -> Optional[AuthenticationTicket]:
    """
    Authenticate the request against ``scheme``.

    Each responsible handler is asked in turn; the first ticket wins.
    """
    for handler in handlers:
        context = AuthenticateContext(scheme)
        if await handler.process_authenticate(context) and context.ticket is not None:
            return context.ticket
    return None


async def get_authentication_ticket(
    handlers: List[AuthenticationHandler] = Depends(get_handlers)
) -> AuthenticationTicket:
    """
    Get the ticket for the current request from the automatic handlers.

    Raises:
        HTTPException: If no handler authenticates the request
    """
    ticket = await authenticate_scheme(handlers, None)

    if ticket is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
        )
    return ticket


def require_scheme(scheme: str):
    """
    Create a dependency that requires a ticket from a specific scheme.

    Args:
        scheme: Authentication scheme name

    Returns:
        Dependency function
    """
    async def scheme_checker(
        handlers: List[AuthenticationHandler] = Depends(get_handlers)
    ) -> AuthenticationTicket:
        ticket = await authenticate_scheme(handlers, scheme)
        if ticket is None:
            raise HTTPException(
                status_code=401,
                detail=f"Authentication with scheme '{scheme}' required"
            )
        return ticket

    return scheme_checker
