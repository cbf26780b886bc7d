"""
oidc-gate main application.
"""

import os
import time
import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST
import uvicorn

from oidc_gate.authentication.errors import ConfigurationError
from oidc_gate.core.config import (
    Settings,
    create_backchannel,
    create_openidconnect_options,
    load_merged_config,
)
from oidc_gate.core.dependencies import initialize_schemes
from oidc_gate.core.middleware import AuthenticationMiddleware, SchemeRegistration
from oidc_gate.api.v1.auth import router as auth_router
from oidc_gate.observability import get_metrics_collector, setup_logging, setup_tracing
from oidc_gate.openidconnect.backchannel import Backchannel
from oidc_gate.openidconnect.events import OpenIdConnectEvents
from oidc_gate.openidconnect.handler import OpenIdConnectHandler

VERSION = "0.1.0"


def build_registrations(
    settings: Settings,
    events: Optional[OpenIdConnectEvents] = None,
    backchannel: Optional[Backchannel] = None
) -> List[SchemeRegistration]:
    """Create the scheme registrations described by the settings."""
    options = create_openidconnect_options(settings, events)
    return [
        SchemeRegistration(
            options=options,
            handler_factory=lambda: OpenIdConnectHandler(backchannel)
        )
    ]


def create_app(
    settings: Optional[Settings] = None,
    events: Optional[OpenIdConnectEvents] = None,
    backchannel: Optional[Backchannel] = None,
    registrations: Optional[List[SchemeRegistration]] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings; merged config when omitted
        events: Lifecycle callbacks for the OpenID Connect scheme
        backchannel: Token validation, code redemption and user info collaborator;
            built from the settings when omitted
        registrations: Explicit scheme registrations, replacing the settings-based one

    Returns:
        FastAPI application
    """
    settings = settings or load_merged_config()
    if backchannel is None:
        backchannel = create_backchannel(settings)
    registrations = registrations or build_registrations(settings, events, backchannel)
    initialize_schemes(registrations)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        setup_logging(settings.log_level, settings.log_format, settings.log_file)
        if settings.enable_tracing:
            setup_tracing(otlp_endpoint=settings.otlp_endpoint, app=app)
        get_metrics_collector().set_schemes_count(len(registrations))

        for registration in registrations:
            logging.info(f"Registered authentication scheme: {registration.scheme}")

        yield

        close = getattr(backchannel, "close", None)
        if close is not None:
            await close()
        logging.info("oidc-gate shutdown complete")

    app = FastAPI(
        title="oidc-gate",
        description="OpenID Connect relying-party authentication layer",
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(AuthenticationMiddleware, registrations=registrations)

    # Allowed origins should be restricted to the UI's domain in production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    app.include_router(auth_router, prefix="/api/v1")

    @app.get("/", tags=["Health"])
    def read_root():
        """Root endpoint providing service info."""
        return {
            "service": "oidc-gate",
            "version": VERSION,
            "status": "running"
        }

    @app.get("/health", tags=["Health"])
    @app.get("/healthz", tags=["Health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/readyz", tags=["Health"])
    def readiness_check():
        """Readiness check endpoint."""
        return {"status": "ready", "schemes": [r.scheme for r in registrations]}

    @app.get("/metrics", tags=["Observability"])
    def metrics():
        """Prometheus metrics endpoint."""
        if not settings.enable_metrics:
            return Response(status_code=404)
        return Response(
            content=get_metrics_collector().get_metrics(),
            media_type=CONTENT_TYPE_LATEST
        )

    return app


def main():
    """Main entry point for the application."""
    import argparse

    parser = argparse.ArgumentParser(description="oidc-gate OpenID Connect relying party")
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to bind to")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("--log-level", help="Log level")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()
    run_server(args.config, args.host, args.port, args.log_level, args.reload)


def run_server(
    config_file: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    log_level: Optional[str] = None,
    reload: bool = False
) -> None:
    """Run the application under uvicorn, CLI flags overriding settings."""
    settings = load_merged_config(config_file)
    if host:
        settings.host = host
    if port:
        settings.port = port
    if log_level:
        settings.log_level = log_level

    if not settings.id_token_validator:
        raise ConfigurationError(
            "No id token validator configured; set OIDC_GATE_ID_TOKEN_VALIDATOR "
            "or oidc.id_token_validator to a \"module:function\" path"
        )

    if reload:
        # Reload needs an import string; the factory re-reads the config file
        if config_file:
            os.environ["OIDC_GATE_CONFIG_FILE"] = config_file
        target = "oidc_gate.main:create_app"
    else:
        target = create_app(settings)

    uvicorn.run(
        target,
        factory=reload,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=reload,
        ssl_keyfile=settings.tls_key_file,
        ssl_certfile=settings.tls_cert_file,
    )


if __name__ == "__main__":
    main()
