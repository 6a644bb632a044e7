"""API key validation for the catalog sync API.

Keys are configured as a comma separated list (ADMIN_API_KEY) and compared
in constant time against the value presented in the X-API-Key header.
"""

import hmac


def parse_api_keys(value: str) -> list[str]:
    """Split a comma separated key list, dropping blanks and surrounding whitespace."""
    return [key.strip() for key in value.split(",") if key.strip()]


class APIKeyValidator:
    """Validates API keys presented in the X-API-Key header."""

    def __init__(self, api_keys: list[str]) -> None:
        """Initialize validator with list of valid API keys.

        Args:
            api_keys: List of valid API key strings

        Raises:
            ValueError: If api_keys list is empty
        """
        if not api_keys:
            raise ValueError("At least one API key must be provided")

        self._api_keys = tuple(key.encode() for key in dict.fromkeys(api_keys))

    def validate(self, api_key: str) -> bool:
        """Check a presented key against every configured key.

        Every configured key is compared so the time taken does not reveal
        which key (if any) matched.
        """
        presented = api_key.encode()
        matched = False
        for key in self._api_keys:
            matched |= hmac.compare_digest(presented, key)
        return matched
