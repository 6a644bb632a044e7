"""Unit tests for Clover adapter."""

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from catalog_sync_service.adapters.base_adapter import PosAdapter
from catalog_sync_service.adapters.clover_adapter import PAGE_SIZE, CloverAdapter, cents_to_currency


def make_response(status_code: int = 200, payload: dict[str, Any] | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


CLOVER_ITEM = {
    "id": "CLV1",
    "name": "Cheeseburger",
    "price": 1299,
    "hidden": False,
    "available": True,
    "categories": {"elements": [{"id": "CAT1", "name": "Burgers"}]},
    "modifierGroups": {"elements": [{"id": "MG1"}]},
}

CLOVER_GROUP = {
    "id": "MG1",
    "name": "Cheese",
    "minRequired": 1,
    "maxRequired": 2,
    "modifiers": {"elements": [{"id": "MOD1", "name": "Cheddar", "price": 50}]},
}


@pytest.mark.unit
class TestCentsToCurrency:
    """Test suite for cents_to_currency."""

    def test_converts_cents(self) -> None:
        """Test integer cents become two-decimal currency."""
        assert cents_to_currency(1299) == Decimal("12.99")
        assert cents_to_currency(50) == Decimal("0.50")

    def test_missing_amount_is_zero(self) -> None:
        """Test a missing price is treated as zero."""
        assert cents_to_currency(None) == Decimal("0.00")


@pytest.mark.unit
class TestCloverAdapter:
    """Test suite for CloverAdapter."""

    @pytest.fixture
    def adapter(self) -> CloverAdapter:
        """Create a Clover adapter for testing."""
        return CloverAdapter(api_endpoint="https://api.clover.test/", app_id="test_app_id")

    def test_adapter_initialization(self, adapter: CloverAdapter) -> None:
        """Test adapter initializes with a normalized base URL."""
        assert isinstance(adapter, PosAdapter)
        assert adapter.platform_name == "clover"
        assert adapter.base_url == "https://api.clover.test"
        assert adapter.app_id == "test_app_id"

    @pytest.mark.asyncio
    async def test_fetch_inventory_maps_items(self, adapter: CloverAdapter) -> None:
        """Test items are mapped with expanded modifier groups."""
        responses = [
            make_response(payload={"elements": [CLOVER_ITEM]}),
            make_response(payload={"elements": [CLOVER_GROUP]}),
        ]

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=responses):
            inventory = await adapter.fetch_inventory("M123", "access-token")

        assert inventory == [
            {
                "name": "Cheeseburger",
                "price": Decimal("12.99"),
                "status": True,
                "categories": [{"name": "Burgers", "status": True}],
                "modifier_groups": [
                    {
                        "name": "Cheese",
                        "min_required": 1,
                        "max_required": 2,
                        "modifiers": [{"name": "Cheddar", "price": Decimal("0.50")}],
                    }
                ],
            }
        ]

    @pytest.mark.asyncio
    async def test_hidden_item_is_inactive(self, adapter: CloverAdapter) -> None:
        """Test hidden items map to an inactive status."""
        hidden = {**CLOVER_ITEM, "hidden": True, "modifierGroups": {"elements": []}}
        responses = [
            make_response(payload={"elements": [hidden]}),
            make_response(payload={"elements": []}),
        ]

        with patch("httpx.AsyncClient.get", new_callable=AsyncMock, side_effect=responses):
            inventory = await adapter.fetch_inventory("M123", "access-token")

        assert inventory is not None
        assert inventory[0]["status"] is False
        assert inventory[0]["modifier_groups"] == []

    @pytest.mark.asyncio
    async def test_fetch_inventory_pages(self, adapter: CloverAdapter) -> None:
        """Test a full page triggers a request for the next offset."""
        full_page = [{**CLOVER_ITEM, "modifierGroups": {"elements": []}}] * PAGE_SIZE
        mock_get = AsyncMock(
            side_effect=[
                make_response(payload={"elements": full_page}),
                make_response(payload={"elements": []}),
                make_response(payload={"elements": []}),
            ]
        )

        with patch("httpx.AsyncClient.get", mock_get):
            inventory = await adapter.fetch_inventory("M123", "access-token")

        assert inventory is not None
        assert len(inventory) == PAGE_SIZE
        second_call = mock_get.call_args_list[1]
        assert second_call.kwargs["params"]["offset"] == PAGE_SIZE

    @pytest.mark.asyncio
    async def test_fetch_inventory_api_error(self, adapter: CloverAdapter) -> None:
        """Test that API errors return None."""
        with patch(
            "httpx.AsyncClient.get", new_callable=AsyncMock, return_value=make_response(status_code=401)
        ):
            inventory = await adapter.fetch_inventory("M123", "access-token")

        assert inventory is None

    @pytest.mark.asyncio
    async def test_fetch_inventory_network_error(self, adapter: CloverAdapter) -> None:
        """Test that network errors return None."""
        with patch(
            "httpx.AsyncClient.get",
            new_callable=AsyncMock,
            side_effect=httpx.RequestError("Connection failed", request=MagicMock()),
        ):
            inventory = await adapter.fetch_inventory("M123", "access-token")

        assert inventory is None

    @pytest.mark.asyncio
    async def test_refresh_tokens_success(self, adapter: CloverAdapter) -> None:
        """Test a successful refresh returns the new token pair."""
        mock_post = AsyncMock(
            return_value=make_response(
                payload={
                    "access_token": "new-access",
                    "access_token_expiration": 1800000000,
                    "refresh_token": "new-refresh",
                    "refresh_token_expiration": 1900000000,
                }
            )
        )

        with patch("httpx.AsyncClient.post", mock_post):
            tokens = await adapter.refresh_tokens("old-refresh")

        assert tokens == {
            "access_token": "new-access",
            "access_token_expiration": 1800000000,
            "refresh_token": "new-refresh",
            "refresh_token_expiration": 1900000000,
        }
        assert mock_post.call_args.args[0] == "https://api.clover.test/oauth/v2/refresh"
        assert mock_post.call_args.kwargs["json"] == {
            "client_id": "test_app_id",
            "refresh_token": "old-refresh",
        }

    @pytest.mark.asyncio
    async def test_refresh_tokens_rejected(self, adapter: CloverAdapter) -> None:
        """Test a non-200 refresh returns None."""
        with patch(
            "httpx.AsyncClient.post", new_callable=AsyncMock, return_value=make_response(status_code=400)
        ):
            assert await adapter.refresh_tokens("old-refresh") is None

    @pytest.mark.asyncio
    async def test_refresh_tokens_missing_tokens(self, adapter: CloverAdapter) -> None:
        """Test a response without tokens returns None."""
        with patch(
            "httpx.AsyncClient.post",
            new_callable=AsyncMock,
            return_value=make_response(payload={"access_token": "only-access"}),
        ):
            assert await adapter.refresh_tokens("old-refresh") is None

    def test_incomplete_adapter_cannot_be_instantiated(self) -> None:
        """Test that abstract methods must be implemented by subclasses."""

        class IncompleteAdapter(PosAdapter):
            async def refresh_tokens(self, refresh_token: str) -> dict[str, Any] | None:
                return None

        with pytest.raises(TypeError):
            IncompleteAdapter("incomplete")  # type: ignore
