"""Read access to master registries and restaurant context.

The option registry, the import row ceiling and the order channels a
restaurant publishes on are read once per request or job, outside the
job's unit of work.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync_service.models.catalog_models import ItemOptionsEnum, MenuTypeEnum
from catalog_sync_service.models.catalog_tables import Config, ItemOption, Menu, Restaurant

logger = logging.getLogger(__name__)

MAX_CSV_ROWS_CONFIG = "MaxCSVRows"


@dataclass
class OptionDefinition:
    """Registry entry for one item option type."""

    id: str
    type: ItemOptionsEnum
    display_name: str
    desc: str


@dataclass
class RestaurantContext:
    """Restaurant configuration the validator needs to normalize rows."""

    restaurant_id: str
    menu_types: list[MenuTypeEnum] = field(default_factory=list)
    item_options: list[OptionDefinition] = field(default_factory=list)
    max_rows: int = 500


class MastersRepository:
    """Repository over master registries and per-restaurant configuration."""

    def __init__(self, session_factory: sessionmaker[Session], default_max_rows: int = 500) -> None:
        """Initialize repository.

        Args:
            session_factory: Catalog session factory
            default_max_rows: Row ceiling used when no MaxCSVRows config exists
        """
        self.session_factory = session_factory
        self.default_max_rows = default_max_rows

    def get_item_options(self) -> list[OptionDefinition]:
        """Return every registered item option, ordered by type."""
        with self.session_factory() as session:
            rows = session.scalars(select(ItemOption).order_by(ItemOption.type)).all()
            options = []
            for row in rows:
                try:
                    option_type = ItemOptionsEnum(row.type)
                except ValueError:
                    logger.warning(f"Ignoring unknown item option type {row.type}")
                    continue
                options.append(
                    OptionDefinition(
                        id=row.id,
                        type=option_type,
                        display_name=row.display_name,
                        desc=row.desc,
                    )
                )
            return options

    def get_max_rows(self) -> int:
        """Return the configured import row ceiling."""
        with self.session_factory() as session:
            config = session.get(Config, MAX_CSV_ROWS_CONFIG)
            if config is None:
                return self.default_max_rows
            return config.value

    def get_menu_types(self, restaurant_id: str) -> list[MenuTypeEnum]:
        """Return the distinct order channels the restaurant has menus for."""
        with self.session_factory() as session:
            types = session.scalars(
                select(Menu.type).where(Menu.restaurant_id == restaurant_id).distinct()
            ).all()
            return [menu_type for menu_type in MenuTypeEnum if menu_type.value in set(types)]

    def restaurant_exists(self, restaurant_id: str) -> bool:
        with self.session_factory() as session:
            return session.get(Restaurant, restaurant_id) is not None

    def menu_exists(self, restaurant_id: str, menu_id: str) -> bool:
        with self.session_factory() as session:
            menu = session.get(Menu, menu_id)
            return menu is not None and menu.restaurant_id == restaurant_id

    def load_context(self, restaurant_id: str) -> RestaurantContext:
        """Gather everything the validator needs for one restaurant."""
        return RestaurantContext(
            restaurant_id=restaurant_id,
            menu_types=self.get_menu_types(restaurant_id),
            item_options=self.get_item_options(),
            max_rows=self.get_max_rows(),
        )
