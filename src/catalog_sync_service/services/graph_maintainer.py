"""Graph consistency maintainer for bidirectional catalog references.

Every reference array is merged by id: adding an id that is already present
is a no-op, and adding a snapshot whose id is present replaces that entry in
place. JSON columns are always reassigned so the ORM sees the change.

Each container row is re-read under a row lock the first time a unit of work
touches it, so concurrent jobs merging into the same category, group or menu
serialize instead of overwriting each other's arrays.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from catalog_sync_service.exceptions import ConflictError, NotFoundError
from catalog_sync_service.models.catalog_models import (
    CategorySnapshot,
    ItemSnapshot,
    ModifierGroupSnapshot,
    ModifierSnapshot,
    PriceTypeEnum,
    StatusEnum,
)
from catalog_sync_service.models.catalog_tables import (
    Category,
    Item,
    Menu,
    Modifier,
    ModifierGroup,
)
from catalog_sync_service.services.reference_resolver import ResolvedRow

logger = logging.getLogger(__name__)


def add_to_set(ids: list[str] | None, value: str) -> list[str]:
    ids = list(ids or [])
    if value not in ids:
        ids.append(value)
    return ids


def remove_from_set(ids: list[str] | None, value: str) -> list[str]:
    return [existing for existing in ids or [] if existing != value]


def upsert_snapshot(snapshots: list[dict[str, Any]] | None, snapshot: dict[str, Any]) -> list[dict[str, Any]]:
    """Replace the entry with the same id in place, or append it.

    Any further entries carrying the same id are dropped.
    """
    merged: list[dict[str, Any]] = []
    placed = False
    for existing in snapshots or []:
        if existing.get("id") == snapshot["id"]:
            if not placed:
                merged.append(snapshot)
                placed = True
            continue
        merged.append(existing)
    if not placed:
        merged.append(snapshot)
    return merged


def replace_snapshot(snapshots: list[dict[str, Any]] | None, snapshot: dict[str, Any]) -> list[dict[str, Any]]:
    """Refresh the entry with the same id without adding a missing one."""
    return [snapshot if existing.get("id") == snapshot["id"] else existing for existing in snapshots or []]


def remove_snapshot(snapshots: list[dict[str, Any]] | None, entity_id: str) -> list[dict[str, Any]]:
    return [existing for existing in snapshots or [] if existing.get("id") != entity_id]


def item_snapshot(item: Item) -> dict[str, Any]:
    return ItemSnapshot(
        id=item.id,
        name=item.name,
        price=item.price,
        status=StatusEnum(item.status),
        image=item.image,
    ).to_document()


def category_snapshot(category: Category) -> dict[str, Any]:
    return CategorySnapshot(
        id=category.id, name=category.name, status=StatusEnum(category.status)
    ).to_document()


def modifier_snapshot(modifier: Modifier) -> dict[str, Any]:
    return ModifierSnapshot(
        id=modifier.id,
        name=modifier.name,
        desc=modifier.desc,
        price=modifier.price,
        pre_select=modifier.pre_select,
        is_item=modifier.is_item,
    ).to_document()


def modifier_group_snapshot(group: ModifierGroup) -> dict[str, Any]:
    return ModifierGroupSnapshot(
        id=group.id, name=group.name, pricing_type=PriceTypeEnum(group.pricing_type)
    ).to_document()


class GraphConsistencyMaintainer:
    """Keeps both sides of every catalog reference in sync for one unit of work."""

    def __init__(self, session: Session, restaurant_id: str) -> None:
        """Initialize the maintainer.

        Args:
            session: Session bound to the job's unit of work
            restaurant_id: Restaurant every entity must belong to
        """
        self.session = session
        self.restaurant_id = restaurant_id
        self._locked: set[tuple[type[Any], str]] = set()

    def apply(self, resolved: ResolvedRow, menu_id: str | None = None) -> None:
        """Repair every reference touched by one resolved row.

        Raises:
            NotFoundError: If a referenced id does not exist
            ConflictError: If the references are still inconsistent afterwards
        """
        item = self._load(Item, resolved.item_id)

        self._sync_categories(item, resolved)
        if menu_id is not None:
            self._link_menu(menu_id, resolved.category_ids)
        if resolved.modifier_groups is not None:
            self._sync_modifier_groups(item, resolved)

        self.verify_item(item)

    def _sync_categories(self, item: Item, resolved: ResolvedRow) -> None:
        for category_id in resolved.previous_category_ids:
            if category_id in resolved.category_ids:
                continue
            previous = self._load(Category, category_id)
            previous.items = remove_snapshot(previous.items, item.id)
            logger.debug(f"Moved item {item.id} out of category {category_id}")

        snapshot = item_snapshot(item)
        for category_id in resolved.category_ids:
            category = self._load(Category, category_id)
            category.items = upsert_snapshot(category.items, snapshot)
            self._refresh_menu_snapshots(category)

        item.category_ids = list(resolved.category_ids)

    def _link_menu(self, menu_id: str, category_ids: list[str]) -> None:
        menu = self._load(Menu, menu_id)
        for category_id in category_ids:
            category = self._load(Category, category_id)
            category.menu_ids = add_to_set(category.menu_ids, menu.id)
            menu.categories = upsert_snapshot(menu.categories, category_snapshot(category))

    def _refresh_menu_snapshots(self, category: Category) -> None:
        snapshot = category_snapshot(category)
        for menu_id in category.menu_ids or []:
            menu = self._load(Menu, menu_id)
            menu.categories = replace_snapshot(menu.categories, snapshot)

    def _sync_modifier_groups(self, item: Item, resolved: ResolvedRow) -> None:
        groups = resolved.modifier_groups or []
        current_ids = [group.id for group in groups]

        for group_id in resolved.previous_modifier_group_ids:
            if group_id in current_ids:
                continue
            previous = self._load(ModifierGroup, group_id)
            previous.item_ids = remove_from_set(previous.item_ids, item.id)

        group_snapshots = []
        for resolved_group in groups:
            group = self._load(ModifierGroup, resolved_group.id)
            group.item_ids = add_to_set(group.item_ids, item.id)

            for modifier_id in resolved_group.modifier_ids:
                modifier = self._load(Modifier, modifier_id)
                modifier.modifier_group_ids = add_to_set(modifier.modifier_group_ids, group.id)
                snapshot = modifier_snapshot(modifier)
                group.modifiers = upsert_snapshot(group.modifiers, snapshot)
                for other_group_id in modifier.modifier_group_ids:
                    if other_group_id == group.id:
                        continue
                    other = self._load(ModifierGroup, other_group_id)
                    other.modifiers = replace_snapshot(other.modifiers, snapshot)

            group_snapshots = upsert_snapshot(group_snapshots, modifier_group_snapshot(group))

        item.modifier_groups = group_snapshots

    def verify_item(self, item: Item) -> None:
        """Check that every container the item points at holds exactly one current snapshot."""
        expected = item_snapshot(item)
        for category_id in item.category_ids or []:
            category = self._load(Category, category_id)
            matches = [entry for entry in category.items or [] if entry.get("id") == item.id]
            if len(matches) != 1 or matches[0] != expected:
                raise ConflictError(
                    f"Category {category_id} does not hold a current snapshot of item {item.id}",
                    details={"category_id": category_id, "item_id": item.id},
                )

        for group in item.modifier_groups or []:
            modifier_group = self._load(ModifierGroup, group["id"])
            if item.id not in (modifier_group.item_ids or []):
                raise ConflictError(
                    f"Modifier group {group['id']} does not reference item {item.id}",
                    details={"modifier_group_id": group["id"], "item_id": item.id},
                )

    def _load(self, model: type[Any], entity_id: str) -> Any:
        key = (model, entity_id)
        if key in self._locked:
            entity = self.session.get(model, entity_id)
        else:
            # Refreshing replaces unflushed attribute changes, so write them first
            self.session.flush()
            entity = self.session.get(
                model, entity_id, with_for_update=True, populate_existing=True
            )
        if entity is None or entity.restaurant_id != self.restaurant_id:
            raise NotFoundError(
                f"{model.__name__} {entity_id} not found",
                details={"entity": model.__tablename__, "id": entity_id},
            )
        self._locked.add(key)
        return entity
