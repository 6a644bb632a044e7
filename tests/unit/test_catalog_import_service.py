"""Unit tests for batch catalog imports."""

from collections.abc import Callable
from decimal import Decimal
from typing import Any
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync_service.exceptions import ConflictError, NotFoundError, TransactionError
from catalog_sync_service.models.catalog_models import RowItem, RowModifier, RowModifierGroup
from catalog_sync_service.models.catalog_tables import (
    Base,
    Category,
    Item,
    Menu,
    Modifier,
    ModifierGroup,
)
from catalog_sync_service.services.catalog_import_service import CatalogImportService
from catalog_sync_service.services.graph_maintainer import GraphConsistencyMaintainer
from catalog_sync_service.services.transaction_coordinator import TransactionCoordinator

ONLINE_MENU_ID = "menu_online"


class SerializationFailure(Exception):
    pgcode = "40001"


def catalog_state(session_factory: sessionmaker[Session]) -> dict[str, list[dict[str, Any]]]:
    """Every catalog row keyed by table, excluding timestamps."""
    state = {}
    with session_factory() as session:
        for table in Base.metadata.sorted_tables:
            rows = session.execute(select(table)).mappings().all()
            state[table.name] = sorted(
                ({key: value for key, value in row.items() if key != "created_at"} for row in rows),
                key=lambda row: str(row.get("id", row.get("type"))),
            )
    return state


def find_by_name(session: Session, model: type[Any], name: str) -> Any:
    return session.scalars(select(model).where(model.name == name)).one()


@pytest.fixture
def import_service(seeded_catalog: sessionmaker[Session]) -> CatalogImportService:
    return CatalogImportService(coordinator=TransactionCoordinator(seeded_catalog))


@pytest.mark.unit
class TestApplyBatch:
    """Test suite for CatalogImportService.apply_batch."""

    def test_two_row_batch(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test each item lands in its category and points back at it."""
        rows = [
            row_item(name="Burger", price="9.99", categories=["Mains"]),
            row_item(name="Fries", price="3.50", categories=["Sides"], status=False),
        ]

        summary = import_service.apply_batch(mock_restaurant_id, rows)

        assert summary.items.created == 2
        assert summary.categories.created == 2
        with seeded_catalog() as session:
            burger = find_by_name(session, Item, "Burger")
            fries = find_by_name(session, Item, "Fries")
            mains = find_by_name(session, Category, "Mains")
            sides = find_by_name(session, Category, "Sides")

            assert mains.items == [
                {"id": burger.id, "name": "Burger", "price": "9.99", "status": "active", "image": None}
            ]
            assert sides.items == [
                {"id": fries.id, "name": "Fries", "price": "3.50", "status": "inactive", "image": None}
            ]
            assert burger.category_ids == [mains.id]
            assert fries.category_ids == [sides.id]

    def test_resubmitting_batch_is_idempotent(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test an identical second batch leaves the catalog unchanged."""
        rows = [
            row_item(name="Burger", price="9.99", categories=["Mains"]),
            row_item(name="Fries", price="3.50", categories=["Sides"], status=False),
        ]
        import_service.apply_batch(mock_restaurant_id, rows, menu_id=ONLINE_MENU_ID)
        before = catalog_state(seeded_catalog)

        summary = import_service.apply_batch(mock_restaurant_id, rows, menu_id=ONLINE_MENU_ID)

        assert catalog_state(seeded_catalog) == before
        assert summary.items.created == 0
        assert summary.items.updated == 2

    def test_moving_item_between_categories(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test re-describing an item under another category moves it."""
        import_service.apply_batch(
            mock_restaurant_id, [row_item(name="Burger", price="9.99", categories=["Mains"])]
        )

        import_service.apply_batch(
            mock_restaurant_id, [row_item(name="Burger", price="9.99", categories=["Specials"])]
        )

        with seeded_catalog() as session:
            burger = find_by_name(session, Item, "Burger")
            mains = find_by_name(session, Category, "Mains")
            specials = find_by_name(session, Category, "Specials")

            assert all(entry["id"] != burger.id for entry in mains.items)
            assert [entry["id"] for entry in specials.items] == [burger.id]
            assert burger.category_ids == [specials.id]

    def test_price_change_refreshes_snapshots(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test the category snapshot is replaced in place, never duplicated."""
        import_service.apply_batch(mock_restaurant_id, [row_item(name="Burger", price="9.99")])

        import_service.apply_batch(mock_restaurant_id, [row_item(name="Burger", price="11.49")])

        with seeded_catalog() as session:
            category = find_by_name(session, Category, "Burgers")
            assert len(category.items) == 1
            assert category.items[0]["price"] == "11.49"

    def test_links_categories_to_menu(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test importing into a menu links its categories both ways."""
        import_service.apply_batch(mock_restaurant_id, [row_item()], menu_id=ONLINE_MENU_ID)

        with seeded_catalog() as session:
            category = find_by_name(session, Category, "Burgers")
            menu = session.get(Menu, ONLINE_MENU_ID)

            assert category.menu_ids == [ONLINE_MENU_ID]
            assert menu.categories == [{"id": category.id, "name": "Burgers", "status": "active"}]

    def test_unknown_menu_rolls_back(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test a missing target menu fails the batch without partial writes."""
        with pytest.raises(NotFoundError):
            import_service.apply_batch(mock_restaurant_id, [row_item()], menu_id="menu_missing")

        with seeded_catalog() as session:
            assert session.scalars(select(Item)).all() == []

    def test_failure_on_later_row_rolls_back_whole_batch(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test a failure on row 2 leaves no trace of row 1."""
        original_apply = GraphConsistencyMaintainer.apply
        calls = {"count": 0}

        def failing_apply(self: GraphConsistencyMaintainer, resolved: Any, menu_id: str | None = None) -> None:
            calls["count"] += 1
            if calls["count"] == 2:
                raise ConflictError("Simulated conflict on row 2")
            original_apply(self, resolved, menu_id=menu_id)

        rows = [row_item(name="Burger", categories=["Mains"]), row_item(name="Fries", categories=["Sides"])]

        with patch.object(GraphConsistencyMaintainer, "apply", autospec=True, side_effect=failing_apply):
            with pytest.raises(ConflictError):
                import_service.apply_batch(mock_restaurant_id, rows)

        with seeded_catalog() as session:
            assert session.scalars(select(Item)).all() == []
            assert session.scalars(select(Category)).all() == []

    def test_storage_failure_on_later_row_rolls_back_whole_batch(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test a database error on row 2 surfaces as TransactionError and leaves no rows."""
        original_apply = GraphConsistencyMaintainer.apply
        calls = {"count": 0}

        def failing_apply(self: GraphConsistencyMaintainer, resolved: Any, menu_id: str | None = None) -> None:
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("UPDATE categories", {}, Exception("disk I/O error"))
            original_apply(self, resolved, menu_id=menu_id)

        rows = [row_item(name="Burger", categories=["Mains"]), row_item(name="Fries", categories=["Sides"])]

        with patch.object(GraphConsistencyMaintainer, "apply", autospec=True, side_effect=failing_apply):
            with pytest.raises(TransactionError) as exc_info:
                import_service.apply_batch(mock_restaurant_id, rows)

        assert exc_info.value.details == {"cause": "OperationalError"}
        assert calls["count"] == 2
        with seeded_catalog() as session:
            assert session.scalars(select(Item)).all() == []
            assert session.scalars(select(Category)).all() == []

    def test_lock_conflict_reruns_whole_batch(
        self,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test a serialization failure on row 2 retries the batch from row 1."""
        import_service = CatalogImportService(TransactionCoordinator(seeded_catalog, retry_delay_seconds=0))
        original_apply = GraphConsistencyMaintainer.apply
        calls = {"count": 0}

        def conflicting_apply(self: GraphConsistencyMaintainer, resolved: Any, menu_id: str | None = None) -> None:
            calls["count"] += 1
            if calls["count"] == 2:
                raise OperationalError("UPDATE categories", {}, SerializationFailure("could not serialize"))
            original_apply(self, resolved, menu_id=menu_id)

        rows = [row_item(name="Burger", categories=["Mains"]), row_item(name="Fries", categories=["Sides"])]

        with patch.object(GraphConsistencyMaintainer, "apply", autospec=True, side_effect=conflicting_apply):
            summary = import_service.apply_batch(mock_restaurant_id, rows)

        assert calls["count"] == 4
        assert summary.items.created == 2
        with seeded_catalog() as session:
            assert sorted(item.name for item in session.scalars(select(Item)).all()) == ["Burger", "Fries"]

    def test_modifier_groups_both_directions(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test groups reference their items and modifiers reference their groups."""
        cheese = RowModifierGroup(
            name="Cheese", modifiers=[RowModifier(name="Cheddar", price=Decimal("0.50"))]
        )
        sauce = RowModifierGroup(name="Sauce", modifiers=[RowModifier(name="Ketchup")])

        import_service.apply_batch(
            mock_restaurant_id, [row_item(name="Burger", modifier_groups=[cheese, sauce])]
        )

        with seeded_catalog() as session:
            burger = find_by_name(session, Item, "Burger")
            cheese_group = find_by_name(session, ModifierGroup, "Cheese")
            cheddar = find_by_name(session, Modifier, "Cheddar")

            assert [group["name"] for group in burger.modifier_groups] == ["Cheese", "Sauce"]
            assert cheese_group.item_ids == [burger.id]
            assert cheddar.modifier_group_ids == [cheese_group.id]
            assert cheese_group.modifiers[0]["price"] == "0.50"

        import_service.apply_batch(
            mock_restaurant_id, [row_item(name="Burger", modifier_groups=[cheese])]
        )

        with seeded_catalog() as session:
            burger = find_by_name(session, Item, "Burger")
            sauce_group = find_by_name(session, ModifierGroup, "Sauce")

            assert [group["name"] for group in burger.modifier_groups] == ["Cheese"]
            assert sauce_group.item_ids == []

    def test_rows_without_groups_keep_memberships(
        self,
        import_service: CatalogImportService,
        seeded_catalog: sessionmaker[Session],
        mock_restaurant_id: str,
        row_item: Callable[..., RowItem],
    ) -> None:
        """Test a row that does not describe groups leaves them untouched."""
        cheese = RowModifierGroup(name="Cheese", modifiers=[RowModifier(name="Cheddar")])
        import_service.apply_batch(
            mock_restaurant_id, [row_item(name="Burger", modifier_groups=[cheese])]
        )

        import_service.apply_batch(mock_restaurant_id, [row_item(name="Burger", price="10.00")])

        with seeded_catalog() as session:
            burger = find_by_name(session, Item, "Burger")
            assert [group["name"] for group in burger.modifier_groups] == ["Cheese"]
            assert find_by_name(session, ModifierGroup, "Cheese").item_ids == [burger.id]
