"""
OpenID Connect protocol message.
"""

from typing import Dict, Mapping, Optional

from oidc_gate.authentication.encoding import UrlEncoder, default_url_encoder


class OpenIdConnectMessage:
    """A bag of protocol parameters with typed accessors."""

    def __init__(
        self,
        parameters: Optional[Mapping[str, str]] = None,
        issuer_address: Optional[str] = None,
    ):
        self.parameters: Dict[str, str] = dict(parameters or {})
        self.issuer_address = issuer_address

    @classmethod
    def from_mapping(cls, values: Mapping[str, str]) -> "OpenIdConnectMessage":
        return cls({key: str(value) for key, value in values.items()})

    def get(self, name: str) -> Optional[str]:
        return self.parameters.get(name) or None

    def set(self, name: str, value: Optional[str]) -> None:
        if value is None:
            self.parameters.pop(name, None)
        else:
            self.parameters[name] = value

    @property
    def code(self) -> Optional[str]:
        return self.get("code")

    @property
    def id_token(self) -> Optional[str]:
        return self.get("id_token")

    @property
    def access_token(self) -> Optional[str]:
        return self.get("access_token")

    @property
    def refresh_token(self) -> Optional[str]:
        return self.get("refresh_token")

    @property
    def token_type(self) -> Optional[str]:
        return self.get("token_type")

    @property
    def expires_in(self) -> Optional[str]:
        return self.get("expires_in")

    @property
    def state(self) -> Optional[str]:
        return self.get("state")

    @property
    def error(self) -> Optional[str]:
        return self.get("error")

    @property
    def error_description(self) -> Optional[str]:
        return self.get("error_description")

    def _build_url(self, encoder: UrlEncoder) -> str:
        query = encoder.encode_query(self.parameters)
        if not self.issuer_address:
            return "?" + query
        separator = "&" if "?" in self.issuer_address else "?"
        return f"{self.issuer_address}{separator}{query}" if query else self.issuer_address

    def create_authentication_request_url(self, encoder: UrlEncoder = default_url_encoder) -> str:
        return self._build_url(encoder)

    def create_logout_request_url(self, encoder: UrlEncoder = default_url_encoder) -> str:
        return self._build_url(encoder)

    def __repr__(self) -> str:
        names = ", ".join(sorted(self.parameters))
        return f"OpenIdConnectMessage(issuer_address={self.issuer_address!r}, parameters=[{names}])"
