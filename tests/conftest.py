"""Shared pytest fixtures and configuration for all tests."""

import os
from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Any

os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync_service.models.catalog_models import (
    ItemOptionsEnum,
    MenuTypeEnum,
    PriceOption,
    RowCategory,
    RowItem,
    StatusEnum,
    VisibilityEntry,
)
from catalog_sync_service.models.catalog_tables import ItemOption, Menu, Restaurant, TaxRate
from catalog_sync_service.repositories.catalog_database import (
    create_catalog_engine,
    create_catalog_tables,
    create_session_factory,
)
from catalog_sync_service.repositories.masters_repository import MastersRepository
from catalog_sync_service.services.row_validator import expected_headers

RESTAURANT_ID = "rest_123456"
ONLINE_MENU_ID = "menu_online"
DINE_IN_MENU_ID = "menu_dine_in"
TAX_RATE_ID = "tax_standard"

RESTAURANT_AVAILABILITY = [{"day": "monday", "open": "09:00", "close": "22:00"}]

# Registry rows are read back ordered by type
OPTION_TYPES = [ItemOptionsEnum.IS_HALAL, ItemOptionsEnum.IS_VEGAN, ItemOptionsEnum.POPULAR_ITEM]


@pytest.fixture
def mock_restaurant_id() -> str:
    """Fixture providing a standard test restaurant ID."""
    return RESTAURANT_ID


@pytest.fixture
def catalog_engine() -> Iterator[Engine]:
    """In-memory catalog database with every table created."""
    engine = create_catalog_engine("sqlite://")
    create_catalog_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(catalog_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(catalog_engine)


@pytest.fixture
def seeded_catalog(session_factory: sessionmaker[Session]) -> sessionmaker[Session]:
    """Restaurant with an online ordering and a dine-in menu, a tax rate and the option registry."""
    with session_factory() as session:
        session.add(
            Restaurant(id=RESTAURANT_ID, name="Test Bistro", availability=RESTAURANT_AVAILABILITY)
        )
        session.add(
            Menu(
                id=ONLINE_MENU_ID,
                restaurant_id=RESTAURANT_ID,
                name="Online",
                type=MenuTypeEnum.ONLINE_ORDERING.value,
                categories=[],
            )
        )
        session.add(
            Menu(
                id=DINE_IN_MENU_ID,
                restaurant_id=RESTAURANT_ID,
                name="Dine In",
                type=MenuTypeEnum.DINE_IN.value,
                categories=[],
            )
        )
        session.add(
            TaxRate(
                id=TAX_RATE_ID,
                restaurant_id=RESTAURANT_ID,
                name="Standard",
                sales_tax=Decimal("8.250"),
            )
        )
        for option_type in OPTION_TYPES:
            session.add(
                ItemOption(
                    id=f"opt_{option_type.value.lower()}",
                    type=option_type.value,
                    display_name=option_type.value,
                    desc=f"{option_type.value} flag",
                )
            )
        session.commit()
    return session_factory


@pytest.fixture
def masters_repository(seeded_catalog: sessionmaker[Session]) -> MastersRepository:
    return MastersRepository(session_factory=seeded_catalog)


@pytest.fixture
def spreadsheet_header() -> list[str]:
    """Header row matching the seeded option registry."""
    return expected_headers(OPTION_TYPES)


@pytest.fixture
def spreadsheet_row() -> Callable[..., list[Any]]:
    """Builder for one spreadsheet data row in header order."""

    def build(
        item: str = "Cheeseburger",
        category: str = "Burgers",
        price: Any = "12.50",
        status: Any = "true",
        online: Any = "true",
        dine_in: Any = "false",
        catering: Any = "false",
        limit: Any = "",
        halal: Any = "",
        vegan: Any = "",
        popular: Any = "",
        category_desc: str = "",
        sub_category: str = "",
        sub_category_desc: str = "",
        item_desc: str = "",
    ) -> list[Any]:
        return [
            category,
            category_desc,
            sub_category,
            sub_category_desc,
            item,
            item_desc,
            price,
            status,
            online,
            dine_in,
            catering,
            limit,
            halal,
            vegan,
            popular,
        ]

    return build


@pytest.fixture
def row_item() -> Callable[..., RowItem]:
    """Builder for a validated RowItem published on the online ordering channel."""

    def build(
        name: str = "Cheeseburger",
        price: str = "12.50",
        categories: list[str] | None = None,
        status: bool = True,
        **kwargs: Any,
    ) -> RowItem:
        amount = Decimal(price)
        return RowItem(
            name=name,
            price=amount,
            status=status,
            categories=[RowCategory(name=category) for category in categories or ["Burgers"]],
            visibility=[
                VisibilityEntry(
                    menu_type=MenuTypeEnum.ONLINE_ORDERING, status=StatusEnum.from_flag(status)
                )
            ],
            price_options=[PriceOption(menu_type=MenuTypeEnum.ONLINE_ORDERING, price=amount)],
            **kwargs,
        )

    return build
