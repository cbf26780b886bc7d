"""
Authentication API endpoints.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from oidc_gate.authentication.contexts import ChallengeContext, SignOutContext
from oidc_gate.authentication.errors import ConfigurationError
from oidc_gate.authentication.handler import AuthenticationHandler
from oidc_gate.authentication.ticket import AuthenticationProperties, AuthenticationTicket
from oidc_gate.core.dependencies import (
    find_handler,
    get_authentication_ticket,
    get_handlers,
    get_scheme_registrations,
)
from oidc_gate.core.middleware import SchemeRegistration, safe_redirect_target
from oidc_gate.models.schemas import (
    LifecyclePointDTO,
    LifecyclePointListResponse,
    PrincipalDTO,
    SchemeDTO,
    SchemeMatchResponse,
    TicketDTO,
)
from oidc_gate.openidconnect.events import LIFECYCLE_DESCRIPTIONS, LifecyclePoint

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _require_handler(handlers: List[AuthenticationHandler], scheme: Optional[str]) -> AuthenticationHandler:
    handler = find_handler(handlers, scheme)
    if handler is None:
        raise HTTPException(
            status_code=404,
            detail=f"No handler for scheme '{scheme or ''}'"
        )
    return handler


@router.get("/challenge")
async def challenge(
    request: Request,
    scheme: Optional[str] = Query(None, description="Scheme to challenge; automatic handlers when omitted"),
    redirect_uri: Optional[str] = Query(None, description="Where to return after sign-in"),
    handlers: List[AuthenticationHandler] = Depends(get_handlers)
):
    """
    Challenge the user agent, redirecting it to the identity provider.
    """
    handler = _require_handler(handlers, scheme)
    # Sign-in returns to / unless the caller names a same-host target
    properties = AuthenticationProperties(
        redirect_uri=safe_redirect_target(redirect_uri, request)
    )
    context = ChallengeContext(scheme, properties)

    try:
        handled = await handler.challenge(context)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    if handled and handler.response is not None:
        return handler.response
    raise HTTPException(
        status_code=401,
        detail="Authentication required"
    )


@router.get("/signout")
async def sign_out(
    request: Request,
    scheme: Optional[str] = Query(None),
    redirect_uri: Optional[str] = Query(None),
    handlers: List[AuthenticationHandler] = Depends(get_handlers)
):
    """
    Sign out of the identity provider's session.
    """
    handler = _require_handler(handlers, scheme)
    properties = AuthenticationProperties(
        redirect_uri=safe_redirect_target(redirect_uri, request) if redirect_uri else None
    )
    id_token = request.query_params.get("id_token_hint")
    if id_token:
        properties.items[".Token.id_token"] = id_token

    await handler.sign_out(SignOutContext(scheme, properties))

    if handler.response is not None:
        return handler.response
    return {"status": "signed_out"}


@router.get("/me", response_model=TicketDTO)
async def get_me(ticket: AuthenticationTicket = Depends(get_authentication_ticket)):
    """
    Get the authenticated principal for the current request.
    """
    principal = None
    if ticket.principal is not None:
        principal = PrincipalDTO(
            subject=ticket.principal.subject,
            authentication_type=ticket.principal.authentication_type,
            claims=ticket.principal.claims
        )

    properties = ticket.properties or AuthenticationProperties()
    return TicketDTO(
        authentication_scheme=ticket.authentication_scheme,
        principal=principal,
        redirect_uri=properties.redirect_uri,
        is_persistent=properties.is_persistent,
        issued_utc=properties.issued_utc,
        expires_utc=properties.expires_utc
    )


@router.get("/schemes", response_model=List[SchemeDTO])
async def list_schemes(
    registrations: List[SchemeRegistration] = Depends(get_scheme_registrations)
):
    """
    List configured authentication schemes.
    """
    return [
        SchemeDTO(
            authentication_scheme=registration.options.authentication_scheme,
            display_name=registration.options.display_name,
            automatic_authentication=registration.options.automatic_authentication,
            callback_path=getattr(registration.options, "callback_path", None)
        )
        for registration in registrations
    ]


@router.get("/schemes/match", response_model=List[SchemeMatchResponse])
async def match_scheme(
    scheme: Optional[str] = Query(None, description="Requested scheme; omit for none"),
    handlers: List[AuthenticationHandler] = Depends(get_handlers)
):
    """
    Evaluate which handlers would process a request for ``scheme``.
    """
    return [
        SchemeMatchResponse(
            requested_scheme=scheme,
            configured_scheme=handler.options.authentication_scheme,
            automatic_authentication=handler.options.automatic_authentication,
            matches=handler.should_handle_scheme(scheme)
        )
        for handler in handlers
    ]


@router.get("/events", response_model=List[LifecyclePointListResponse])
async def list_events(
    registrations: List[SchemeRegistration] = Depends(get_scheme_registrations)
):
    """
    List lifecycle points and which ones the application overrides, per scheme.
    """
    results = []
    for registration in registrations:
        events = getattr(registration.options, "events", None)
        if events is None:
            continue
        results.append(LifecyclePointListResponse(
            scheme=registration.options.authentication_scheme,
            events=[
                LifecyclePointDTO(
                    name=point.value,
                    description=LIFECYCLE_DESCRIPTIONS[point],
                    overridden=events.is_overridden(point)
                )
                for point in LifecyclePoint
            ]
        ))
    return results
