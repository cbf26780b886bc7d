"""
Configuration management for oidc-gate.
"""

import os
from typing import Optional, Dict, Any
from pydantic_settings import BaseSettings, SettingsConfigDict
from uvicorn.importer import ImportFromStringError, import_from_string
from oidc_gate.authentication.errors import ConfigurationError
from oidc_gate.models.schemas import AppConfig
from oidc_gate.openidconnect.backchannel import HttpxBackchannel
from oidc_gate.openidconnect.events import OpenIdConnectEvents
from oidc_gate.openidconnect.options import DEFAULT_SCHEME, OpenIdConnectOptions


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_prefix="OIDC_GATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # TLS settings
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None

    # Scheme settings
    authentication_scheme: str = DEFAULT_SCHEME
    automatic_authentication: bool = False
    display_name: Optional[str] = None

    # Provider settings
    authority: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None
    userinfo_endpoint: Optional[str] = None
    end_session_endpoint: Optional[str] = None

    # Flow settings
    callback_path: str = "/signin-oidc"
    post_logout_redirect_uri: Optional[str] = None
    response_type: str = "code id_token"
    response_mode: Optional[str] = "form_post"
    scope: str = "openid profile"
    get_claims_from_user_info_endpoint: bool = False
    save_tokens: bool = False

    # Backchannel settings: "package.module:function" of an async id token validator
    id_token_validator: Optional[str] = None
    backchannel_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    # Observability
    enable_metrics: bool = True
    enable_tracing: bool = False
    otlp_endpoint: Optional[str] = None

    # Config file path
    config_file: Optional[str] = None


def create_app_config(settings: Settings) -> AppConfig:
    """
    Create AppConfig from Settings.

    Secrets are left out so the result can be shown to operators.

    Args:
        settings: Application settings

    Returns:
        AppConfig instance
    """
    return AppConfig(
        server={
            "host": settings.host,
            "port": settings.port,
            "workers": settings.workers
        },
        tls={
            "cert_file": settings.tls_cert_file,
            "key_file": settings.tls_key_file
        } if settings.tls_cert_file else None,
        oidc={
            "authentication_scheme": settings.authentication_scheme,
            "automatic_authentication": settings.automatic_authentication,
            "authority": settings.authority,
            "client_id": settings.client_id,
            "callback_path": settings.callback_path,
            "response_type": settings.response_type,
            "scope": settings.scope,
            "get_claims_from_user_info_endpoint": settings.get_claims_from_user_info_endpoint,
            "save_tokens": settings.save_tokens
        },
        log_level=settings.log_level.upper(),
        enable_metrics=settings.enable_metrics,
        enable_tracing=settings.enable_tracing
    )


def create_openidconnect_options(
    settings: Settings,
    events: Optional[OpenIdConnectEvents] = None
) -> OpenIdConnectOptions:
    """
    Build handler options from settings.

    Args:
        settings: Application settings
        events: Lifecycle callbacks; defaults to all no-ops

    Returns:
        OpenIdConnectOptions instance
    """
    return OpenIdConnectOptions(
        authentication_scheme=settings.authentication_scheme,
        automatic_authentication=settings.automatic_authentication,
        display_name=settings.display_name,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        authority=settings.authority,
        authorization_endpoint=settings.authorization_endpoint,
        token_endpoint=settings.token_endpoint,
        userinfo_endpoint=settings.userinfo_endpoint,
        end_session_endpoint=settings.end_session_endpoint,
        callback_path=settings.callback_path,
        post_logout_redirect_uri=settings.post_logout_redirect_uri,
        response_type=settings.response_type,
        response_mode=settings.response_mode,
        scope=settings.scope,
        get_claims_from_user_info_endpoint=settings.get_claims_from_user_info_endpoint,
        save_tokens=settings.save_tokens,
        events=events or OpenIdConnectEvents()
    )


def create_backchannel(settings: Settings) -> Optional[HttpxBackchannel]:
    """
    Build the HTTP backchannel named by the settings.

    Args:
        settings: Application settings

    Returns:
        HttpxBackchannel, or None when no id token validator is configured

    Raises:
        ConfigurationError: If the validator cannot be imported or is not callable
    """
    if not settings.id_token_validator:
        return None

    try:
        validator = import_from_string(settings.id_token_validator)
    except ImportFromStringError as e:
        raise ConfigurationError(f"Cannot load id token validator: {e}") from e

    if not callable(validator):
        raise ConfigurationError(
            f"Id token validator '{settings.id_token_validator}' is not callable"
        )

    return HttpxBackchannel(validator, timeout=settings.backchannel_timeout)


def load_config_from_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file

    Returns:
        Configuration dictionary
    """
    import yaml

    if not os.path.exists(config_path):
        return {}

    try:
        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        print(f"WARNING: Failed to load config file {config_path}: {e}")
        return {}


def get_config_file_paths() -> list[str]:
    """Get list of potential config file paths in order of preference."""
    return [
        os.environ.get("OIDC_GATE_CONFIG_FILE", ""),
        "/etc/oidc-gate/config.yaml",
        os.path.expanduser("~/.config/oidc-gate/config.yaml"),
        "./config.yaml"
    ]


_DIRECT_KEYS = [
    "log_level", "log_format", "log_file", "enable_metrics",
    "enable_tracing", "otlp_endpoint"
]


def flatten_config(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a nested config file into flat settings keys.

    ``server:`` and ``tls:`` sections map onto the server settings; every key
    of the ``oidc:`` section maps onto the setting of the same name.
    """
    flat_config: Dict[str, Any] = {}

    server_config = config_data.get("server") or {}
    for key in ("host", "port", "workers"):
        if key in server_config:
            flat_config[key] = server_config[key]

    tls_config = config_data.get("tls") or {}
    if "cert_file" in tls_config:
        flat_config["tls_cert_file"] = tls_config["cert_file"]
    if "key_file" in tls_config:
        flat_config["tls_key_file"] = tls_config["key_file"]

    oidc_config = config_data.get("oidc") or {}
    for key, value in oidc_config.items():
        if key in Settings.model_fields:
            flat_config[key] = value

    for key in _DIRECT_KEYS:
        if key in config_data:
            flat_config[key] = config_data[key]

    return flat_config


def load_merged_config(config_file: Optional[str] = None) -> Settings:
    """
    Load configuration from multiple sources with precedence:
    1. CLI flags (handled by caller)
    2. Environment variables
    3. Configuration files
    4. Defaults
    """
    paths = [config_file] if config_file else get_config_file_paths()

    config_data: Dict[str, Any] = {}
    used_path: Optional[str] = None
    for config_path in paths:
        if config_path and os.path.exists(config_path):
            config_data = load_config_from_file(config_path)
            used_path = config_path
            break

    if not config_data:
        return Settings()

    # Environment variables beat the file
    flat_config = {
        key: value for key, value in flatten_config(config_data).items()
        if f"OIDC_GATE_{key.upper()}" not in os.environ
    }
    flat_config["config_file"] = used_path
    return Settings(**flat_config)
