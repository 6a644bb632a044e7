"""Base adapter for point-of-sale vendor integrations.

This module defines the abstract base class every POS adapter implements.
Adapters use simple return values (None) for expected failures rather than
raising exceptions; the calling service turns a None into an
ExternalServiceError.
"""

from abc import ABC, abstractmethod
from typing import Any


class PosAdapter(ABC):
    """Abstract base class for POS vendor adapters.

    The adapter follows a simple error handling pattern:
    - fetch_inventory returns None on failure
    - refresh_tokens returns None on failure
    - The service layer decides whether a failure is fatal
    """

    def __init__(self, platform_name: str) -> None:
        """Initialize the POS adapter.

        Args:
            platform_name: Name of the POS vendor (e.g., 'clover')
        """
        self.platform_name = platform_name

    @abstractmethod
    async def fetch_inventory(self, merchant_id: str, access_token: str) -> list[dict[str, Any]] | None:
        """Fetch the merchant's inventory mapped to neutral import items.

        Each returned item has the shape accepted by
        ``RowValidator.validate_pos_items``: ``{name, price, status,
        categories: [{name, status}], modifier_groups: [{name, min_required,
        max_required, modifiers: [{name, price}]}]}`` with prices in currency
        units.

        Args:
            merchant_id: Merchant identifier at the vendor
            access_token: Decrypted OAuth access token

        Returns:
            list: Neutral item dictionaries, or None if the fetch fails
        """
        pass

    @abstractmethod
    async def refresh_tokens(self, refresh_token: str) -> dict[str, Any] | None:
        """Exchange a refresh token for a new token pair.

        Args:
            refresh_token: Decrypted OAuth refresh token

        Returns:
            dict: ``access_token``, ``access_token_expiration``,
            ``refresh_token`` and ``refresh_token_expiration``, or None on failure
        """
        pass
