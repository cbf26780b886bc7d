"""
OpenID Connect handler options.
"""

from dataclasses import dataclass, field
from typing import Optional

from oidc_gate.authentication.options import AuthenticationOptions
from .events import OpenIdConnectEvents

DEFAULT_SCHEME = "OpenIdConnect"


@dataclass
class OpenIdConnectOptions(AuthenticationOptions):
    """Configuration for one OpenID Connect scheme."""
    authentication_scheme: Optional[str] = DEFAULT_SCHEME
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    authority: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None
    callback_path: str = "/signin-oidc"
    post_logout_redirect_uri: Optional[str] = None
    response_type: str = "code id_token"
    response_mode: Optional[str] = "form_post"
    scope: str = "openid profile"
    get_claims_from_user_info_endpoint: bool = False
    save_tokens: bool = False
    events: OpenIdConnectEvents = field(default_factory=OpenIdConnectEvents)

    def __post_init__(self):
        # Endpoints default to the usual paths under the authority
        if self.authority:
            authority = self.authority.rstrip("/")
            self.authorization_endpoint = self.authorization_endpoint or f"{authority}/authorize"
            self.token_endpoint = self.token_endpoint or f"{authority}/token"
            self.userinfo_endpoint = self.userinfo_endpoint or f"{authority}/userinfo"
