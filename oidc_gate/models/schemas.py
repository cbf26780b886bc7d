"""
Pydantic models for oidc-gate.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


# DTOs for API responses
class PrincipalDTO(BaseModel):
    """Authenticated principal for API responses."""
    subject: Optional[str] = None
    authentication_type: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)


class TicketDTO(BaseModel):
    """Authentication ticket for API responses."""
    authentication_scheme: Optional[str] = None
    principal: Optional[PrincipalDTO] = None
    redirect_uri: Optional[str] = None
    is_persistent: bool = False
    issued_utc: Optional[datetime] = None
    expires_utc: Optional[datetime] = None


class SchemeMatchResponse(BaseModel):
    """Result of evaluating the scheme-match predicate."""
    requested_scheme: Optional[str]
    configured_scheme: Optional[str]
    automatic_authentication: bool
    matches: bool


class LifecyclePointDTO(BaseModel):
    """One lifecycle point and whether the application overrides it."""
    name: str
    description: str
    overridden: bool


class LifecyclePointListResponse(BaseModel):
    """Response model for listing lifecycle points."""
    scheme: Optional[str]
    events: List[LifecyclePointDTO]


class SchemeDTO(BaseModel):
    """A configured authentication scheme."""
    authentication_scheme: Optional[str]
    display_name: Optional[str] = None
    automatic_authentication: bool
    callback_path: Optional[str] = None


# Configuration models
class ServerConfig(BaseModel):
    """Server configuration."""
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1)


class TLSServerConfig(BaseModel):
    """TLS server configuration."""
    cert_file: Optional[str] = None
    key_file: Optional[str] = None


class OpenIdConnectConfig(BaseModel):
    """Non-secret OpenID Connect settings."""
    authentication_scheme: str = Field(default="OpenIdConnect")
    automatic_authentication: bool = False
    authority: Optional[str] = None
    client_id: Optional[str] = None
    callback_path: str = Field(default="/signin-oidc", pattern=r'^/.*')
    response_type: str = "code id_token"
    scope: str = "openid profile"
    get_claims_from_user_info_endpoint: bool = False
    save_tokens: bool = False

    @field_validator('scope')
    @classmethod
    def validate_scope(cls, v):
        if "openid" not in v.split():
            raise ValueError("Scope must include 'openid'")
        return v


class AppConfig(BaseModel):
    """Main application configuration."""
    server: ServerConfig = Field(default_factory=ServerConfig)
    tls: Optional[TLSServerConfig] = None
    oidc: OpenIdConnectConfig = Field(default_factory=OpenIdConnectConfig)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_metrics: bool = True
    enable_tracing: bool = False
