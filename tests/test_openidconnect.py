"""
Tests for the OpenID Connect handler flow.
"""

import logging
from urllib.parse import parse_qs, urlparse

import pytest
from starlette.responses import PlainTextResponse

from oidc_gate.authentication import (
    AuthenticationProperties,
    AuthenticationTicket,
    ChallengeContext,
    ClaimsPrincipal,
    ConfigurationError,
    OpenIdConnectProtocolError,
    SignOutContext,
    default_url_encoder,
)
from oidc_gate.openidconnect import (
    LifecyclePoint,
    OpenIdConnectEvents,
    OpenIdConnectHandler,
    OpenIdConnectMessage,
    OpenIdConnectOptions,
)
from conftest import FakeBackchannel, make_request


def build_handler(options, backchannel=None, path="/signin-oidc", query=None):
    handler = OpenIdConnectHandler(backchannel)
    handler.initialize(
        options,
        make_request(path, query=query),
        logging.getLogger("oidc_gate.tests"),
        default_url_encoder
    )
    return handler


def record_events(events: OpenIdConnectEvents) -> list:
    """Make every slot append its lifecycle point name to the returned list."""
    fired = []
    for point in LifecyclePoint:
        async def callback(context, name=point.value):
            fired.append(name)
        events.set_callback(point, callback)
    return fired


class TestCallbackDetection:
    """Requests that are not provider callbacks produce no result."""

    @pytest.mark.asyncio
    async def test_other_path_returns_none(self, oidc_options, backchannel):
        handler = build_handler(oidc_options, backchannel, path="/app", query={"id_token": "tok"})

        assert await handler.authenticate() is None
        assert backchannel.validated == []

    @pytest.mark.asyncio
    async def test_callback_without_parameters_returns_none(self, oidc_options, backchannel):
        fired = record_events(oidc_options.events)
        handler = build_handler(oidc_options, backchannel)

        assert await handler.authenticate() is None
        assert fired == []


class TestIdTokenFlow:
    """Callbacks carrying an id token."""

    @pytest.mark.asyncio
    async def test_id_token_produces_ticket(self, oidc_options, backchannel):
        fired = record_events(oidc_options.events)
        state = AuthenticationProperties(redirect_uri="/dashboard").to_state()
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "state": state})

        ticket = await handler.authenticate()

        assert ticket.authentication_scheme == "OpenIdConnect"
        assert ticket.principal.subject == "alice"
        assert ticket.principal.authentication_type == "OpenIdConnect"
        assert ticket.properties.redirect_uri == "/dashboard"
        assert backchannel.validated == ["tok"]
        assert fired == [
            "message_received",
            "id_token_received",
            "id_token_validated",
            "authentication_completed",
        ]

    @pytest.mark.asyncio
    async def test_id_token_received_can_replace_token(self, oidc_options, backchannel):
        async def replace(context):
            context.id_token = "replaced"

        oidc_options.events.on_id_token_received = replace
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        await handler.authenticate()

        assert backchannel.validated == ["replaced"]

    @pytest.mark.asyncio
    async def test_id_token_received_sees_raw_token_and_message(self, oidc_options, backchannel):
        seen = {}

        async def capture(context):
            seen["id_token"] = context.id_token
            seen["message"] = context.protocol_message

        oidc_options.events.on_id_token_received = capture
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "session_state": "s1"})

        await handler.authenticate()

        assert seen["id_token"] == "tok"
        assert seen["message"].get("session_state") == "s1"

    @pytest.mark.asyncio
    async def test_expiry_claims_populate_properties(self, oidc_options):
        backchannel = FakeBackchannel(claims={"sub": "alice", "iat": 1700000000, "exp": 1700003600})
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        ticket = await handler.authenticate()

        assert ticket.properties.issued_utc.timestamp() == 1700000000
        assert ticket.properties.expires_utc.timestamp() == 1700003600

    @pytest.mark.asyncio
    async def test_nonce_mismatch_fails(self, oidc_options):
        backchannel = FakeBackchannel(claims={"sub": "alice", "nonce": "other"})
        state = AuthenticationProperties(items={".nonce": "expected"}).to_state()
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "state": state})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_nonce_claim_without_expected_nonce_fails(self, oidc_options):
        backchannel = FakeBackchannel(claims={"sub": "alice", "nonce": "n1"})
        state = AuthenticationProperties(redirect_uri="/home").to_state()
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "state": state})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_matching_nonce_is_consumed(self, oidc_options):
        backchannel = FakeBackchannel(claims={"sub": "alice", "nonce": "expected"})
        state = AuthenticationProperties(items={".nonce": "expected"}).to_state()
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "state": state})

        ticket = await handler.authenticate()

        assert ".nonce" not in ticket.properties.items


class TestCodeFlow:
    """Callbacks carrying an authorization code."""

    @pytest.mark.asyncio
    async def test_hybrid_flow_event_order(self, oidc_options, backchannel):
        fired = record_events(oidc_options.events)
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "code": "code-1"})

        ticket = await handler.authenticate()

        assert ticket.principal.subject == "alice"
        assert backchannel.redeemed == [("code-1", "http://testserver/signin-oidc")]
        assert fired == [
            "message_received",
            "id_token_received",
            "id_token_validated",
            "authorization_code_received",
            "authorization_code_redeemed",
            "authentication_completed",
        ]

    @pytest.mark.asyncio
    async def test_code_only_uses_redeemed_id_token(self, oidc_options, backchannel):
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        ticket = await handler.authenticate()

        assert ticket is not None
        assert backchannel.validated == ["redeemed-id-token"]

    @pytest.mark.asyncio
    async def test_code_only_without_id_token_fails(self, oidc_options):
        backchannel = FakeBackchannel(token_response={"access_token": "a"})
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_callback_can_redeem_code_itself(self, oidc_options, backchannel):
        async def redeem(context):
            context.handle_code_redemption(OpenIdConnectMessage({"id_token": "from-callback"}))

        oidc_options.events.on_authorization_code_received = redeem
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        await handler.authenticate()

        assert backchannel.redeemed == []
        assert backchannel.validated == ["from-callback"]

    @pytest.mark.asyncio
    async def test_redeemed_event_sees_token_response(self, oidc_options, backchannel):
        seen = {}

        async def capture(context):
            seen["access_token"] = context.token_endpoint_response.access_token

        oidc_options.events.on_authorization_code_redeemed = capture
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        await handler.authenticate()

        assert seen["access_token"] == "access-123"

    @pytest.mark.asyncio
    async def test_save_tokens(self, oidc_options, backchannel):
        oidc_options.save_tokens = True
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "code": "code-1"})

        ticket = await handler.authenticate()

        assert ticket.properties.items[".Token.id_token"] == "tok"
        assert ticket.properties.items[".Token.access_token"] == "access-123"

    @pytest.mark.asyncio
    async def test_tokens_not_saved_by_default(self, oidc_options, backchannel):
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "code": "code-1"})

        ticket = await handler.authenticate()

        assert not any(key.startswith(".Token.") for key in ticket.properties.items)


class TestUserInformation:
    """Claims from the user info endpoint."""

    @pytest.mark.asyncio
    async def test_user_info_claims_are_merged(self, oidc_options, backchannel):
        oidc_options.get_claims_from_user_info_endpoint = True
        fired = record_events(oidc_options.events)
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        ticket = await handler.authenticate()

        assert backchannel.user_info_calls == ["access-123"]
        assert ticket.principal.claims["email"] == "alice@example.com"
        assert ticket.principal.claims["name"] == "Alice"
        assert fired[-2:] == ["user_information_received", "authentication_completed"]

    @pytest.mark.asyncio
    async def test_user_info_subject_mismatch_fails(self, oidc_options):
        oidc_options.get_claims_from_user_info_endpoint = True
        backchannel = FakeBackchannel(user_info={"sub": "mallory"})
        handler = build_handler(oidc_options, backchannel, query={"code": "code-1"})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_user_info_skipped_without_access_token(self, oidc_options, backchannel):
        oidc_options.get_claims_from_user_info_endpoint = True
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        await handler.authenticate()

        assert backchannel.user_info_calls == []


class TestControlFlow:
    """Callbacks taking over or skipping the flow."""

    @pytest.mark.asyncio
    async def test_message_received_handled_response(self, oidc_options, backchannel):
        async def handle(context):
            context.response = PlainTextResponse("handled", status_code=200)
            context.handle_response()

        oidc_options.events.on_message_received = handle
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        assert await handler.authenticate() is None
        assert handler.response.body == b"handled"
        assert backchannel.validated == []

    @pytest.mark.asyncio
    async def test_message_received_skip(self, oidc_options, backchannel):
        oidc_options.events.on_message_received = lambda context: context.skip_to_next_middleware()
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        assert await handler.authenticate() is None
        assert handler.response is None
        assert backchannel.validated == []

    @pytest.mark.asyncio
    async def test_id_token_validated_can_supply_ticket(self, oidc_options, backchannel):
        replacement = AuthenticationTicket(ClaimsPrincipal({"sub": "bob"}, "custom"), None, "OpenIdConnect")

        async def replace(context):
            context.ticket = replacement
            context.handle_response()

        oidc_options.events.on_id_token_validated = replace
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        assert await handler.authenticate() is replacement

    @pytest.mark.asyncio
    async def test_authentication_completed_can_replace_ticket(self, oidc_options, backchannel):
        async def enrich(context):
            context.ticket.principal.claims["role"] = "admin"

        oidc_options.events.on_authentication_completed = enrich
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        ticket = await handler.authenticate()

        assert ticket.principal.claims["role"] == "admin"


class TestFailures:
    """Errors during callback processing."""

    @pytest.mark.asyncio
    async def test_provider_error_raises_after_failed_event(self, oidc_options, backchannel):
        seen = []

        async def capture(context):
            seen.append(context.exception)

        oidc_options.events.on_authentication_failed = capture
        handler = build_handler(
            oidc_options, backchannel,
            query={"error": "access_denied", "error_description": "User cancelled"}
        )

        with pytest.raises(OpenIdConnectProtocolError) as exc_info:
            await handler.authenticate()

        assert exc_info.value.error == "access_denied"
        assert exc_info.value.error_description == "User cancelled"
        assert seen == [exc_info.value]

    @pytest.mark.asyncio
    async def test_message_without_code_or_id_token_fails(self, oidc_options, backchannel):
        handler = build_handler(oidc_options, backchannel, query={"state": "x"})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_failed_event_can_suppress_with_ticket(self, oidc_options, backchannel):
        fallback = AuthenticationTicket(None, None, "OpenIdConnect")

        async def suppress(context):
            context.ticket = fallback
            context.response = PlainTextResponse("sorry", status_code=400)
            context.handle_response()

        oidc_options.events.on_authentication_failed = suppress
        handler = build_handler(oidc_options, backchannel, query={"error": "server_error"})

        assert await handler.authenticate() is fallback
        assert handler.response.status_code == 400

    @pytest.mark.asyncio
    async def test_failed_event_can_skip(self, oidc_options, backchannel):
        oidc_options.events.on_authentication_failed = lambda context: context.skip_to_next_middleware()
        handler = build_handler(oidc_options, backchannel, query={"error": "server_error"})

        assert await handler.authenticate() is None

    @pytest.mark.asyncio
    async def test_callback_failure_propagates_once(self, oidc_options, backchannel):
        failures = []

        async def reject(context):
            raise PermissionError("tenant not allowed")

        async def count(context):
            failures.append(context.exception)

        oidc_options.events.on_id_token_validated = reject
        oidc_options.events.on_authentication_failed = count
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok"})

        with pytest.raises(PermissionError):
            await handler.authenticate()
        with pytest.raises(PermissionError):
            await handler.authenticate()

        assert len(failures) == 1
        assert backchannel.validated == ["tok"]

    @pytest.mark.asyncio
    async def test_missing_backchannel_is_configuration_error(self, oidc_options):
        handler = build_handler(oidc_options, None, query={"id_token": "tok"})

        with pytest.raises(ConfigurationError):
            await handler.authenticate()

    @pytest.mark.asyncio
    async def test_invalid_state_fails(self, oidc_options, backchannel):
        handler = build_handler(oidc_options, backchannel, query={"id_token": "tok", "state": "!!not-base64!!"})

        with pytest.raises(OpenIdConnectProtocolError):
            await handler.authenticate()

        assert backchannel.validated == []


class TestChallenge:
    """Redirects to the authorization endpoint."""

    @pytest.mark.asyncio
    async def test_challenge_redirects_to_provider(self, oidc_options):
        fired = record_events(oidc_options.events)
        handler = build_handler(oidc_options, path="/private")

        handled = await handler.challenge(ChallengeContext("OpenIdConnect"))

        assert handled is True
        assert handler.response.status_code == 302
        location = urlparse(handler.response.headers["location"])
        params = parse_qs(location.query)
        assert f"{location.scheme}://{location.netloc}{location.path}" == "https://idp.example.com/authorize"
        assert params["client_id"] == ["client-1"]
        assert params["redirect_uri"] == ["http://testserver/signin-oidc"]
        assert params["response_type"] == ["code id_token"]
        assert params["scope"] == ["openid profile"]
        assert "nonce" in params
        assert fired == ["redirect_to_authentication_endpoint"]

        properties = AuthenticationProperties.from_state(params["state"][0])
        assert properties.redirect_uri == "http://testserver/private"
        assert properties.items[".nonce"] == params["nonce"][0]

    @pytest.mark.asyncio
    async def test_redirect_event_can_add_parameters(self, oidc_options):
        async def add_prompt(context):
            context.protocol_message.set("prompt", "login")

        oidc_options.events.on_redirect_to_authentication_endpoint = add_prompt
        handler = build_handler(oidc_options, path="/private")

        await handler.challenge(ChallengeContext("OpenIdConnect"))

        params = parse_qs(urlparse(handler.response.headers["location"]).query)
        assert params["prompt"] == ["login"]

    @pytest.mark.asyncio
    async def test_redirect_event_can_handle_response(self, oidc_options):
        async def own_response(context):
            context.response = PlainTextResponse("no redirect", status_code=401)
            context.handle_response()

        oidc_options.events.on_redirect_to_authentication_endpoint = own_response
        handler = build_handler(oidc_options, path="/private")

        assert await handler.challenge(ChallengeContext("OpenIdConnect")) is True
        assert handler.response.status_code == 401

    @pytest.mark.asyncio
    async def test_challenge_for_other_scheme_does_nothing(self, oidc_options):
        fired = record_events(oidc_options.events)
        handler = build_handler(oidc_options, path="/private")

        assert await handler.challenge(ChallengeContext("Cookies")) is False
        assert handler.response is None
        assert fired == []

    @pytest.mark.asyncio
    async def test_challenge_without_endpoint_fails(self):
        options = OpenIdConnectOptions(client_id="client-1")
        handler = build_handler(options, path="/private")

        with pytest.raises(ConfigurationError):
            await handler.challenge(ChallengeContext("OpenIdConnect"))


class TestSignOut:
    """Redirects to the end session endpoint."""

    @pytest.mark.asyncio
    async def test_sign_out_redirects_to_end_session(self, oidc_options):
        fired = record_events(oidc_options.events)
        oidc_options.post_logout_redirect_uri = "https://app.example.com/bye"
        handler = build_handler(oidc_options, path="/logout")
        properties = AuthenticationProperties(items={".Token.id_token": "tok"})

        await handler.sign_out(SignOutContext("OpenIdConnect", properties))

        location = urlparse(handler.response.headers["location"])
        params = parse_qs(location.query)
        assert location.netloc == "idp.example.com"
        assert location.path == "/logout"
        assert params["post_logout_redirect_uri"] == ["https://app.example.com/bye"]
        assert params["id_token_hint"] == ["tok"]
        assert fired == ["redirect_to_end_session_endpoint"]

    @pytest.mark.asyncio
    async def test_sign_out_without_endpoint_is_noop(self):
        options = OpenIdConnectOptions(authority="https://idp.example.com")
        fired = record_events(options.events)
        handler = build_handler(options, path="/logout")

        assert await handler.sign_out(SignOutContext("OpenIdConnect")) is True
        assert handler.response is None
        assert fired == []


class TestAuthenticationProperties:
    """State encoding of authentication properties."""

    def test_state_round_trip(self):
        properties = AuthenticationProperties(
            items={".nonce": "n"}, redirect_uri="/home", is_persistent=True
        )

        restored = AuthenticationProperties.from_state(properties.to_state())

        assert restored.items == {".nonce": "n"}
        assert restored.redirect_uri == "/home"
        assert restored.is_persistent is True

    def test_non_object_state_rejected(self):
        import base64

        state = base64.urlsafe_b64encode(b"[1, 2]").decode("ascii")

        with pytest.raises(ValueError):
            AuthenticationProperties.from_state(state)

    def test_non_object_items_rejected(self):
        import base64

        state = base64.urlsafe_b64encode(b'{"items": [1, 2]}').decode("ascii")

        with pytest.raises(ValueError):
            AuthenticationProperties.from_state(state)
