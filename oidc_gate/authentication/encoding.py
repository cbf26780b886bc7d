"""
URL encoding utility handed to handlers at construction.
"""

from typing import Mapping
from urllib.parse import quote


class UrlEncoder:
    """Percent-encodes text for use in query strings."""

    def __init__(self, safe: str = ""):
        self.safe = safe

    def encode(self, value: str) -> str:
        return quote(value, safe=self.safe)

    def encode_query(self, parameters: Mapping[str, str]) -> str:
        """Join parameters into a query string, skipping empty values."""
        return "&".join(
            f"{self.encode(key)}={self.encode(value)}"
            for key, value in parameters.items()
            if value is not None and value != ""
        )


default_url_encoder = UrlEncoder()
