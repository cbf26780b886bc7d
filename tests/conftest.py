"""
Shared fixtures for oidc-gate tests.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import pytest
from starlette.requests import Request

from oidc_gate.authentication.encoding import default_url_encoder
from oidc_gate.openidconnect.backchannel import Backchannel
from oidc_gate.openidconnect.message import OpenIdConnectMessage
from oidc_gate.openidconnect.options import OpenIdConnectOptions


def make_request(
    path: str = "/",
    method: str = "GET",
    query: Optional[Dict[str, str]] = None,
    host: str = "testserver"
) -> Request:
    """Build a bare Starlette request for unit tests."""
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": (host, 80),
        "root_path": "",
        "path": path,
        "query_string": urlencode(query or {}).encode("ascii"),
        "headers": [(b"host", host.encode("ascii"))],
    }
    return Request(scope)


class FakeBackchannel(Backchannel):
    """In-memory backchannel recording every call."""

    def __init__(
        self,
        claims: Optional[Dict[str, Any]] = None,
        token_response: Optional[Dict[str, str]] = None,
        user_info: Optional[Dict[str, Any]] = None
    ):
        self.claims = claims if claims is not None else {"sub": "alice", "name": "Alice"}
        self.token_response = token_response if token_response is not None else {
            "access_token": "access-123",
            "id_token": "redeemed-id-token",
            "token_type": "Bearer",
        }
        self.user_info = user_info if user_info is not None else {"sub": "alice", "email": "alice@example.com"}
        self.validated: List[str] = []
        self.redeemed: List[tuple] = []
        self.user_info_calls: List[str] = []

    async def validate_id_token(self, id_token, options):
        self.validated.append(id_token)
        return dict(self.claims)

    async def redeem_code(self, code, redirect_uri, options):
        self.redeemed.append((code, redirect_uri))
        return OpenIdConnectMessage.from_mapping(self.token_response)

    async def get_user_info(self, access_token, options):
        self.user_info_calls.append(access_token)
        return dict(self.user_info)


@pytest.fixture
def backchannel():
    """Create a fake backchannel."""
    return FakeBackchannel()


@pytest.fixture
def oidc_options():
    """Create OpenID Connect options pointing at a fake provider."""
    return OpenIdConnectOptions(
        authentication_scheme="OpenIdConnect",
        client_id="client-1",
        client_secret="secret-1",
        authority="https://idp.example.com",
        end_session_endpoint="https://idp.example.com/logout",
    )


@pytest.fixture
def test_logger():
    """Logger handed to handlers under test."""
    return logging.getLogger("oidc_gate.tests")


@pytest.fixture
def url_encoder():
    return default_url_encoder


async def accept_any_id_token(id_token, options):
    """Id token validator accepting every token as alice."""
    return {"sub": "alice", "name": "Alice"}
