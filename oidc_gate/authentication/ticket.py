"""
Authentication ticket, principal and properties.
"""

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ClaimsPrincipal:
    """Authenticated principal: a bag of claims plus the authentication type."""
    claims: Dict[str, Any] = field(default_factory=dict)
    authentication_type: Optional[str] = None

    @property
    def subject(self) -> Optional[str]:
        return self.claims.get("sub")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.authentication_type)


@dataclass
class AuthenticationProperties:
    """State carried alongside a ticket and round-tripped through the provider."""
    items: Dict[str, str] = field(default_factory=dict)
    redirect_uri: Optional[str] = None
    is_persistent: bool = False
    issued_utc: Optional[datetime] = None
    expires_utc: Optional[datetime] = None

    def to_state(self) -> str:
        """
        Serialize the properties into an opaque ``state`` value.

        The value is encoded, not protected. Callers that need tamper
        protection wrap it in their own data protector. The nonce check on
        callbacks relies on the nonce stored here, so it only binds the id
        token to the challenge while the state itself is protected.
        """
        payload = {
            "items": self.items,
            "redirect_uri": self.redirect_uri,
            "is_persistent": self.is_persistent,
        }
        raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def from_state(cls, state: str) -> "AuthenticationProperties":
        """
        Restore properties from a ``state`` value.

        Raises:
            ValueError: If the state cannot be decoded
        """
        padded = state + "=" * (-len(state) % 4)
        try:
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        except (ValueError, UnicodeError) as e:
            raise ValueError(f"Invalid state value: {e}") from e

        if not isinstance(payload, dict):
            raise ValueError("Invalid state value: expected an object")
        items = payload.get("items") or {}
        if not isinstance(items, dict):
            raise ValueError("Invalid state value: items must be an object")

        return cls(
            items={str(key): str(value) for key, value in items.items()},
            redirect_uri=payload.get("redirect_uri"),
            is_persistent=bool(payload.get("is_persistent", False)),
        )


@dataclass
class AuthenticationTicket:
    """Outcome of a successful authentication."""
    principal: Optional[ClaimsPrincipal]
    properties: Optional[AuthenticationProperties]
    authentication_scheme: Optional[str] = None
