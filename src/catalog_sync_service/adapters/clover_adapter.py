"""Clover POS adapter implementation.

This adapter reads a merchant's inventory from the Clover REST API and maps
it to neutral import items, and refreshes expiring OAuth tokens.
"""

import logging
import time
from decimal import Decimal
from typing import Any

import httpx

from catalog_sync_service.adapters.base_adapter import PosAdapter
from catalog_sync_service.observability.metrics import record_pos_api_call

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


def cents_to_currency(cents: Any) -> Decimal:
    """Convert an integer amount in cents to currency units."""
    return (Decimal(int(cents or 0)) / 100).quantize(Decimal("0.01"))


class CloverAdapter(PosAdapter):
    """Adapter for the Clover REST API.

    Items are fetched with their categories and modifier groups expanded;
    modifier groups are fetched separately with their modifiers expanded
    because item expansions do not include modifiers.
    """

    def __init__(self, api_endpoint: str, app_id: str, timeout: float = 30.0) -> None:
        """Initialize Clover adapter.

        Args:
            api_endpoint: Base URL of the Clover API (e.g., https://api.clover.com)
            app_id: Clover application (client) ID used for token refresh
            timeout: Request timeout in seconds
        """
        super().__init__("clover")
        self.base_url = api_endpoint.rstrip("/")
        self.app_id = app_id
        self.timeout = timeout

    async def fetch_inventory(self, merchant_id: str, access_token: str) -> list[dict[str, Any]] | None:
        """Fetch the merchant's items and modifier groups.

        Args:
            merchant_id: Clover merchant ID
            access_token: Decrypted OAuth access token

        Returns:
            list: Neutral item dictionaries, or None if any request fails
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, headers=headers, timeout=self.timeout
            ) as client:
                items = await self._get_elements(
                    client,
                    f"/v3/merchants/{merchant_id}/items",
                    {"expand": "categories,modifierGroups"},
                    "fetch_items",
                )
                if items is None:
                    return None

                groups = await self._get_elements(
                    client,
                    f"/v3/merchants/{merchant_id}/modifier_groups",
                    {"expand": "modifiers"},
                    "fetch_modifier_groups",
                )
                if groups is None:
                    return None

        except httpx.HTTPError as e:
            logger.error(f"Clover inventory fetch failed for merchant {merchant_id}: {e}")
            return None

        groups_by_id = {group["id"]: group for group in groups}
        inventory = [self._map_item(item, groups_by_id) for item in items]
        logger.info(f"Fetched {len(inventory)} items from Clover for merchant {merchant_id}")
        return inventory

    async def refresh_tokens(self, refresh_token: str) -> dict[str, Any] | None:
        """Exchange a refresh token at ``/oauth/v2/refresh``.

        Args:
            refresh_token: Decrypted refresh token

        Returns:
            dict: New token pair with expirations, or None on failure
        """
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/oauth/v2/refresh",
                    json={"client_id": self.app_id, "refresh_token": refresh_token},
                )
        except httpx.HTTPError as e:
            logger.error(f"Clover token refresh failed: {e}")
            return None
        finally:
            record_pos_api_call(self.platform_name, "refresh_tokens", time.monotonic() - started)

        if response.status_code != 200:
            logger.error(f"Clover token refresh failed: {response.status_code}")
            return None

        data = response.json()
        if not data.get("access_token") or not data.get("refresh_token"):
            logger.error("Clover token refresh response is missing tokens")
            return None

        return {
            "access_token": data["access_token"],
            "access_token_expiration": int(data.get("access_token_expiration") or 0),
            "refresh_token": data["refresh_token"],
            "refresh_token_expiration": int(data.get("refresh_token_expiration") or 0),
        }

    async def _get_elements(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: dict[str, Any],
        operation: str,
    ) -> list[dict[str, Any]] | None:
        elements: list[dict[str, Any]] = []
        offset = 0
        while True:
            started = time.monotonic()
            response = await client.get(path, params={**params, "limit": PAGE_SIZE, "offset": offset})
            record_pos_api_call(self.platform_name, operation, time.monotonic() - started)

            if response.status_code != 200:
                logger.error(f"Clover {operation} failed: {response.status_code}")
                return None

            page = response.json().get("elements", [])
            elements.extend(page)
            if len(page) < PAGE_SIZE:
                return elements
            offset += PAGE_SIZE

    def _map_item(self, item: dict[str, Any], groups_by_id: dict[str, dict[str, Any]]) -> dict[str, Any]:
        categories = [
            {"name": category.get("name", ""), "status": True}
            for category in item.get("categories", {}).get("elements", [])
        ]

        modifier_groups = []
        for reference in item.get("modifierGroups", {}).get("elements", []):
            group = groups_by_id.get(reference["id"], reference)
            modifier_groups.append(
                {
                    "name": group.get("name", ""),
                    "min_required": group.get("minRequired") or 0,
                    "max_required": group.get("maxRequired") or 1,
                    "modifiers": [
                        {"name": modifier.get("name", ""), "price": cents_to_currency(modifier.get("price"))}
                        for modifier in group.get("modifiers", {}).get("elements", [])
                    ],
                }
            )

        return {
            "name": item.get("name", ""),
            "price": cents_to_currency(item.get("price")),
            "status": not item.get("hidden", False) and item.get("available", True),
            "categories": categories,
            "modifier_groups": modifier_groups,
        }
