"""Propagation workers keeping derived catalog fields in step with restaurant config."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalog_sync_service.exceptions import NotFoundError
from catalog_sync_service.models.catalog_models import (
    MenuTypeEnum,
    PriceOption,
    StatusEnum,
    TaxSnapshot,
    VisibilityEntry,
)
from catalog_sync_service.models.catalog_tables import Category, Item, Menu, TaxRate
from catalog_sync_service.observability import traced
from catalog_sync_service.observability.metrics import record_propagation_updates
from catalog_sync_service.services.transaction_coordinator import TransactionCoordinator

logger = logging.getLogger(__name__)


@dataclass
class PropagationResult:
    """Outcome of one propagation run.

    Attributes:
        categories_updated: Categories that gained an entry
        items_updated: Items that gained an entry
        menus_updated: Menus whose tax snapshot was set or rewritten
        skipped: True when the trigger did not apply
    """

    categories_updated: int = 0
    items_updated: int = 0
    menus_updated: int = 0
    skipped: bool = False


def _has_menu_type(entries: list[dict] | None, menu_type: MenuTypeEnum) -> bool:
    return any(entry.get("menu_type") == menu_type.value for entry in entries or [])


class NewMenuTypePropagator:
    """Adds a new order channel to every category and item of a restaurant.

    Visibility entries are added inactive; price options copy the item's base
    price. Entries are only appended when the channel is absent, so re-running
    is a no-op.
    """

    def __init__(self, coordinator: TransactionCoordinator) -> None:
        self.coordinator = coordinator

    @traced("propagation.new_menu_type")
    def propagate(
        self, restaurant_id: str, menu_type: MenuTypeEnum, menu_id: str | None = None
    ) -> PropagationResult:
        """Propagate ``menu_type`` across the restaurant's catalog.

        Args:
            restaurant_id: Restaurant whose catalog is updated
            menu_type: Order channel that was added
            menu_id: The newly created menu; when another menu of the same
                type already exists the channel is not new and nothing changes

        Returns:
            PropagationResult: Counts of rewritten entities
        """

        def work(session: Session) -> PropagationResult:
            if menu_id is not None and self._type_already_present(
                session, restaurant_id, menu_type, menu_id
            ):
                logger.info(
                    f"Menu type {menu_type.value} already present for restaurant "
                    f"{restaurant_id}, skipping propagation"
                )
                return PropagationResult(skipped=True)

            result = PropagationResult()
            inactive = VisibilityEntry(menu_type=menu_type, status=StatusEnum.INACTIVE).to_document()

            categories = session.scalars(
                select(Category).where(Category.restaurant_id == restaurant_id).with_for_update()
            ).all()
            for category in categories:
                if not _has_menu_type(category.visibility, menu_type):
                    category.visibility = [*(category.visibility or []), inactive]
                    result.categories_updated += 1

            items = session.scalars(
                select(Item).where(Item.restaurant_id == restaurant_id).with_for_update()
            ).all()
            for item in items:
                changed = False
                if not _has_menu_type(item.visibility, menu_type):
                    item.visibility = [*(item.visibility or []), inactive]
                    changed = True
                if not _has_menu_type(item.price_options, menu_type):
                    price_option = PriceOption(menu_type=menu_type, price=item.price)
                    item.price_options = [*(item.price_options or []), price_option.to_document()]
                    changed = True
                if changed:
                    result.items_updated += 1

            return result

        result = self.coordinator.run(work)
        record_propagation_updates("menu_type", result.categories_updated + result.items_updated)
        logger.info(
            f"Propagated menu type {menu_type.value} for restaurant {restaurant_id}: "
            f"{result.categories_updated} categories, {result.items_updated} items"
        )
        return result

    def _type_already_present(
        self, session: Session, restaurant_id: str, menu_type: MenuTypeEnum, menu_id: str
    ) -> bool:
        other = session.scalars(
            select(Menu.id).where(
                Menu.restaurant_id == restaurant_id,
                Menu.type == menu_type.value,
                Menu.id != menu_id,
            )
        ).first()
        return other is not None


class TaxRatePropagator:
    """Writes a tax-rate snapshot onto the restaurant's menus.

    A new rate is set on menus without one; an updated rate rewrites menus
    that already carry one and never adds it to menus that have none.
    """

    def __init__(self, coordinator: TransactionCoordinator) -> None:
        self.coordinator = coordinator

    @traced("propagation.tax_rate")
    def propagate(self, restaurant_id: str, tax_rate_id: str, is_new: bool) -> PropagationResult:
        """Propagate a tax-rate change.

        Raises:
            NotFoundError: If the tax rate does not exist for the restaurant
        """

        def work(session: Session) -> PropagationResult:
            tax_rate = session.get(TaxRate, tax_rate_id)
            if tax_rate is None or tax_rate.restaurant_id != restaurant_id:
                raise NotFoundError(
                    f"Tax rate {tax_rate_id} not found",
                    details={"restaurant_id": restaurant_id, "tax_rate_id": tax_rate_id},
                )

            snapshot = TaxSnapshot(
                id=tax_rate.id, name=tax_rate.name, sales_tax=tax_rate.sales_tax
            ).to_document()
            result = PropagationResult()

            menus = session.scalars(
                select(Menu).where(Menu.restaurant_id == restaurant_id).with_for_update()
            ).all()
            for menu in menus:
                if is_new and menu.taxes is None:
                    menu.taxes = snapshot
                    result.menus_updated += 1
                elif not is_new and menu.taxes is not None:
                    menu.taxes = snapshot
                    result.menus_updated += 1

            return result

        result = self.coordinator.run(work)
        record_propagation_updates("tax_rate", result.menus_updated)
        logger.info(
            f"Propagated tax rate {tax_rate_id} ({'add' if is_new else 'update'}) for "
            f"restaurant {restaurant_id}: {result.menus_updated} menus"
        )
        return result
