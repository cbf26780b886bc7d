"""
OpenID Connect authentication handler.

Walks a callback request through the lifecycle points. Token validation,
code redemption and user info retrieval are delegated to a ``Backchannel``.
"""

import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from starlette.responses import RedirectResponse

from oidc_gate.authentication.contexts import BaseControlContext, ChallengeContext, SignOutContext
from oidc_gate.authentication.errors import ConfigurationError, OpenIdConnectProtocolError
from oidc_gate.authentication.handler import AuthenticationHandler
from oidc_gate.authentication.ticket import (
    AuthenticationProperties,
    AuthenticationTicket,
    ClaimsPrincipal,
)
from oidc_gate.observability.logging import AuthLogger
from .backchannel import Backchannel
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
from .events import OpenIdConnectEvents
from .message import OpenIdConnectMessage
from .options import OpenIdConnectOptions

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
NONCE_PROPERTY = ".nonce"
TOKEN_PROPERTY_PREFIX = ".Token."


class _FlowStopped(Exception):
    """Internal signal: a callback handled or skipped the flow."""

    def __init__(self, context: BaseControlContext):
        self.context = context


class OpenIdConnectHandler(AuthenticationHandler[OpenIdConnectOptions]):
    """Per-request OpenID Connect relying-party handler."""

    def __init__(self, backchannel: Optional[Backchannel] = None):
        super().__init__()
        self.backchannel = backchannel

    @property
    def events(self) -> OpenIdConnectEvents:
        return self.options.events

    @property
    def auth_logger(self) -> AuthLogger:
        return AuthLogger(self.logger)

    def _require_backchannel(self) -> Backchannel:
        if self.backchannel is None:
            raise ConfigurationError(
                f"No backchannel configured for scheme '{self.options.authentication_scheme}'"
            )
        return self.backchannel

    def _redirect_uri(self) -> str:
        base = str(self.request.base_url).rstrip("/")
        return base + self.options.callback_path

    def _stop_if_requested(self, context: BaseControlContext) -> None:
        if context.handled_response or context.skipped:
            raise _FlowStopped(context)

    def _result_from(self, context: BaseControlContext) -> Optional[AuthenticationTicket]:
        if context.handled_response:
            self.response = context.response
            return context.ticket
        return None

    async def _read_message(self) -> Optional[OpenIdConnectMessage]:
        request = self.request
        if request.method == "GET":
            if not request.query_params:
                return None
            return OpenIdConnectMessage.from_mapping(request.query_params)

        content_type = request.headers.get("content-type", "")
        if request.method == "POST" and content_type.startswith(FORM_CONTENT_TYPE):
            form = await request.form()
            return OpenIdConnectMessage.from_mapping(
                {key: value for key, value in form.items() if isinstance(value, str)}
            )

        return None

    async def handle_authenticate(self) -> Optional[AuthenticationTicket]:
        if self.request.url.path != self.options.callback_path:
            return None

        message: Optional[OpenIdConnectMessage] = None
        try:
            message = await self._read_message()
            if message is None:
                return None
            return await self._process_message(message)
        except _FlowStopped as stop:
            return self._result_from(stop.context)
        except Exception as e:
            self.auth_logger.log_authentication_failure(
                self.options.authentication_scheme, e
            )
            failed = AuthenticationFailedContext(
                self.request, self.options, exception=e, protocol_message=message
            )
            await self.events.authentication_failed(failed)
            if failed.handled_response:
                return self._result_from(failed)
            if failed.skipped:
                return None
            raise

    async def _process_message(self, message: OpenIdConnectMessage) -> AuthenticationTicket:
        options = self.options

        received = MessageReceivedContext(self.request, options, protocol_message=message)
        await self.events.message_received(received)
        self._stop_if_requested(received)
        message = received.protocol_message

        if message.error:
            raise OpenIdConnectProtocolError(
                f"Message contains error: '{message.error}', "
                f"error_description: '{message.error_description or ''}'",
                error=message.error,
                error_description=message.error_description,
            )

        if not message.code and not message.id_token:
            raise OpenIdConnectProtocolError(
                "Message contains neither an authorization code nor an id token"
            )

        properties = AuthenticationProperties()
        if message.state:
            try:
                properties = AuthenticationProperties.from_state(message.state)
            except ValueError as e:
                raise OpenIdConnectProtocolError(f"Invalid state: {e}") from e

        ticket: Optional[AuthenticationTicket] = None
        tokens: Dict[str, str] = {}

        if message.id_token:
            ticket = await self._receive_id_token(message.id_token, message, properties)
            tokens["id_token"] = message.id_token

        if message.code:
            token_response = await self._receive_code(message.code, message, ticket)
            for name in ("access_token", "refresh_token", "token_type", "expires_in", "id_token"):
                value = token_response.get(name)
                if value:
                    tokens.setdefault(name, value)

            if ticket is None:
                if not token_response.id_token:
                    raise OpenIdConnectProtocolError("Token endpoint response has no id token")
                ticket = await self._receive_id_token(token_response.id_token, message, properties)

        access_token = tokens.get("access_token") or message.access_token
        if options.get_claims_from_user_info_endpoint and access_token:
            ticket = await self._receive_user_info(access_token, ticket, message)

        if options.save_tokens and ticket.properties is not None:
            for name, value in tokens.items():
                ticket.properties.items[TOKEN_PROPERTY_PREFIX + name] = value

        completed = AuthenticationCompletedContext(
            self.request, options, ticket=ticket, protocol_message=message
        )
        await self.events.authentication_completed(completed)
        self._stop_if_requested(completed)

        self.auth_logger.log_authenticated(options.authentication_scheme, completed.ticket)
        return completed.ticket

    async def _receive_id_token(
        self,
        id_token: str,
        message: OpenIdConnectMessage,
        properties: AuthenticationProperties,
    ) -> AuthenticationTicket:
        options = self.options

        received = IdTokenReceivedContext(
            self.request, options, id_token=id_token, protocol_message=message
        )
        await self.events.id_token_received(received)
        self._stop_if_requested(received)

        claims = await self._require_backchannel().validate_id_token(received.id_token, options)
        self._check_nonce(claims, properties)

        if "exp" in claims:
            properties.expires_utc = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        if "iat" in claims:
            properties.issued_utc = datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc)

        ticket = AuthenticationTicket(
            principal=ClaimsPrincipal(
                claims=dict(claims), authentication_type=options.authentication_scheme
            ),
            properties=properties,
            authentication_scheme=options.authentication_scheme,
        )

        validated = IdTokenValidatedContext(
            self.request, options, ticket=ticket, protocol_message=message
        )
        await self.events.id_token_validated(validated)
        self._stop_if_requested(validated)
        return validated.ticket

    def _check_nonce(self, claims: Dict[str, Any], properties: AuthenticationProperties) -> None:
        expected = properties.items.pop(NONCE_PROPERTY, None)
        if expected is None:
            if "nonce" in claims:
                raise OpenIdConnectProtocolError("The id token has a nonce but the state carries none")
            return
        if claims.get("nonce") != expected:
            raise OpenIdConnectProtocolError("The id token nonce does not match the request")

    async def _receive_code(
        self,
        code: str,
        message: OpenIdConnectMessage,
        ticket: Optional[AuthenticationTicket],
    ) -> OpenIdConnectMessage:
        options = self.options
        redirect_uri = self._redirect_uri()

        received = AuthorizationCodeReceivedContext(
            self.request,
            options,
            code=code,
            redirect_uri=redirect_uri,
            protocol_message=message,
            ticket=ticket,
        )
        await self.events.authorization_code_received(received)
        self._stop_if_requested(received)

        if received.handled_code_redemption:
            token_response = received.token_endpoint_response
        else:
            token_response = await self._require_backchannel().redeem_code(
                received.code, received.redirect_uri, options
            )

        redeemed = AuthorizationCodeRedeemedContext(
            self.request,
            options,
            code=received.code,
            token_endpoint_response=token_response,
            protocol_message=message,
        )
        await self.events.authorization_code_redeemed(redeemed)
        self._stop_if_requested(redeemed)
        return redeemed.token_endpoint_response

    async def _receive_user_info(
        self,
        access_token: str,
        ticket: AuthenticationTicket,
        message: OpenIdConnectMessage,
    ) -> AuthenticationTicket:
        options = self.options
        user = await self._require_backchannel().get_user_info(access_token, options)

        subject = ticket.principal.subject if ticket.principal else None
        if subject is not None and user.get("sub") != subject:
            raise OpenIdConnectProtocolError(
                "The sub claim from the user info endpoint does not match the id token"
            )

        received = UserInformationReceivedContext(
            self.request, options, ticket=ticket, user=user, protocol_message=message
        )
        await self.events.user_information_received(received)
        self._stop_if_requested(received)

        ticket = received.ticket
        if ticket.principal is not None:
            for name, value in received.user.items():
                ticket.principal.claims.setdefault(name, value)
        return ticket

    async def handle_unauthorized(self, context: ChallengeContext) -> bool:
        options = self.options
        if not options.authorization_endpoint:
            raise ConfigurationError(
                f"No authorization endpoint configured for scheme '{options.authentication_scheme}'"
            )

        properties = context.properties
        if not properties.redirect_uri:
            properties.redirect_uri = str(self.request.url)

        nonce = secrets.token_urlsafe(32)
        properties.items[NONCE_PROPERTY] = nonce

        message = OpenIdConnectMessage(
            {
                "client_id": options.client_id,
                "redirect_uri": self._redirect_uri(),
                "response_type": options.response_type,
                "response_mode": options.response_mode,
                "scope": options.scope,
                "nonce": nonce,
            },
            issuer_address=options.authorization_endpoint,
        )
        message.set("state", properties.to_state())

        redirect = RedirectContext(
            self.request, options, protocol_message=message, properties=properties
        )
        await self.events.redirect_to_authentication_endpoint(redirect)

        if redirect.handled_response:
            self.response = redirect.response
            return True
        if redirect.skipped:
            return False

        url = redirect.protocol_message.create_authentication_request_url(self.url_encoder)
        self.response = RedirectResponse(url, status_code=302)
        self.auth_logger.log_challenge(options.authentication_scheme, url)
        return True

    async def handle_sign_out(self, context: SignOutContext) -> None:
        options = self.options
        if not options.end_session_endpoint:
            self.logger.warning(
                "No end session endpoint configured, skipping remote sign-out",
                extra={"scheme": options.authentication_scheme, "event": "sign_out"},
            )
            return

        message = OpenIdConnectMessage(issuer_address=options.end_session_endpoint)
        post_logout = context.properties.redirect_uri or options.post_logout_redirect_uri
        message.set("post_logout_redirect_uri", post_logout)
        message.set("id_token_hint", context.properties.items.get(TOKEN_PROPERTY_PREFIX + "id_token"))
        message.set("state", context.properties.to_state() if context.properties.items else None)

        redirect = RedirectContext(
            self.request, options, protocol_message=message, properties=context.properties
        )
        await self.events.redirect_to_end_session_endpoint(redirect)

        if redirect.handled_response:
            self.response = redirect.response
            return
        if redirect.skipped:
            return

        url = redirect.protocol_message.create_logout_request_url(self.url_encoder)
        self.response = RedirectResponse(url, status_code=302)
        self.auth_logger.log_sign_out(options.authentication_scheme, url)
