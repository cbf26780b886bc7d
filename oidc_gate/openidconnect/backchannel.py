"""
Backchannel collaborators used by the OpenID Connect handler.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional
import httpx

from oidc_gate.authentication.errors import OpenIdConnectProtocolError
from .message import OpenIdConnectMessage
from .options import OpenIdConnectOptions

IdTokenValidator = Callable[[str, OpenIdConnectOptions], Awaitable[Dict[str, Any]]]


class Backchannel(ABC):
    """Server-to-provider operations the handler delegates."""

    @abstractmethod
    async def validate_id_token(
        self,
        id_token: str,
        options: OpenIdConnectOptions,
    ) -> Dict[str, Any]:
        """
        Validate an id token.

        Args:
            id_token: Raw id token
            options: Options of the scheme being processed

        Returns:
            The token's claims

        Raises:
            Exception: If the token is not valid
        """
        pass

    @abstractmethod
    async def redeem_code(
        self,
        code: str,
        redirect_uri: str,
        options: OpenIdConnectOptions,
    ) -> OpenIdConnectMessage:
        """Exchange an authorization code at the token endpoint."""
        pass

    async def get_user_info(
        self,
        access_token: str,
        options: OpenIdConnectOptions,
    ) -> Dict[str, Any]:
        """
        Fetch claims from the user info endpoint.

        Raises:
            NotImplementedError: If the backchannel doesn't support user info
        """
        raise NotImplementedError("User info retrieval not supported by this backchannel")


class HttpxBackchannel(Backchannel):
    """Backchannel talking to the provider over HTTP with httpx."""

    def __init__(
        self,
        id_token_validator: IdTokenValidator,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the backchannel.

        Args:
            id_token_validator: Coroutine validating a raw id token and returning its claims
            client: Optional shared HTTP client
            timeout: Request timeout in seconds
        """
        self.id_token_validator = id_token_validator
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)

    async def validate_id_token(self, id_token: str, options: OpenIdConnectOptions) -> Dict[str, Any]:
        return await self.id_token_validator(id_token, options)

    async def redeem_code(
        self,
        code: str,
        redirect_uri: str,
        options: OpenIdConnectOptions,
    ) -> OpenIdConnectMessage:
        if not options.token_endpoint:
            raise OpenIdConnectProtocolError("No token endpoint configured")

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": options.client_id or "",
            "client_secret": options.client_secret or "",
        }
        response = await self.client.post(
            options.token_endpoint,
            data={key: value for key, value in data.items() if value},
            headers={"Accept": "application/json"},
        )

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400 or "error" in payload:
            raise OpenIdConnectProtocolError(
                f"Token endpoint returned {response.status_code}",
                error=payload.get("error"),
                error_description=payload.get("error_description"),
            )

        return OpenIdConnectMessage.from_mapping(payload)

    async def get_user_info(self, access_token: str, options: OpenIdConnectOptions) -> Dict[str, Any]:
        if not options.userinfo_endpoint:
            raise OpenIdConnectProtocolError("No user info endpoint configured")

        response = await self.client.get(
            options.userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        await self.client.aclose()
