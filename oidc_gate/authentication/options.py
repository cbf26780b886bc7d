"""
Options shared by every authentication handler.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class AuthenticationOptions:
    """Per-scheme handler configuration."""
    authentication_scheme: Optional[str] = None
    automatic_authentication: bool = False
    display_name: Optional[str] = None
