"""Reference resolver: natural-key lookup and creation of catalog entities.

A resolver instance belongs to exactly one job run. Its name-to-entity cache
and created/updated tally are never shared between jobs.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog_sync_service.exceptions import ConflictError, NotFoundError
from catalog_sync_service.models.catalog_models import (
    CatalogEntityEnum,
    MenuTypeEnum,
    PriceTypeEnum,
    RowCategory,
    RowItem,
    RowModifierGroup,
    StatusEnum,
    SubCategorySnapshot,
    VisibilityEntry,
)
from catalog_sync_service.models.catalog_tables import (
    Category,
    Item,
    Modifier,
    ModifierGroup,
    Restaurant,
    SubCategory,
)
from catalog_sync_service.models.sync_models import EntityCounts, ImportSummary

logger = logging.getLogger(__name__)

ENTITY_TABLES: dict[CatalogEntityEnum, type[Any]] = {
    CatalogEntityEnum.ITEM: Item,
    CatalogEntityEnum.CATEGORY: Category,
    CatalogEntityEnum.SUB_CATEGORY: SubCategory,
    CatalogEntityEnum.MODIFIER_GROUP: ModifierGroup,
    CatalogEntityEnum.MODIFIER: Modifier,
}

SUMMARY_FIELDS: dict[CatalogEntityEnum, str] = {
    CatalogEntityEnum.ITEM: "items",
    CatalogEntityEnum.CATEGORY: "categories",
    CatalogEntityEnum.SUB_CATEGORY: "sub_categories",
    CatalogEntityEnum.MODIFIER_GROUP: "modifier_groups",
    CatalogEntityEnum.MODIFIER: "modifiers",
}


@dataclass
class ResolvedModifierGroup:
    id: str
    name: str
    modifier_ids: list[str] = field(default_factory=list)


@dataclass
class ResolvedRow:
    """Ids of every entity a RowItem references, plus the item's prior memberships.

    Attributes:
        item_id: Id of the created or updated item
        item_created: Whether the item was created by this row
        category_ids: Categories the item belongs to after this row
        sub_category: Snapshot embedded on the item, if any
        modifier_groups: Groups the item belongs to after this row, or None
            when the row does not describe modifier groups
        previous_category_ids: Categories the item belonged to before this row
        previous_modifier_group_ids: Groups the item belonged to before this row
    """

    item_id: str
    item_created: bool
    category_ids: list[str]
    sub_category: SubCategorySnapshot | None
    modifier_groups: list[ResolvedModifierGroup] | None
    previous_category_ids: list[str] = field(default_factory=list)
    previous_modifier_group_ids: list[str] = field(default_factory=list)


class ReferenceResolver:
    """Resolves or creates the entities a RowItem references.

    Creation happens inside a SAVEPOINT. A unique-constraint violation means a
    concurrent job created the same natural key first, so the winner is re-read
    and treated as an existing entity.
    """

    def __init__(self, session: Session, restaurant_id: str, user_id: str | None = None) -> None:
        """Initialize the resolver for one job run.

        Args:
            session: Session bound to the job's unit of work
            restaurant_id: Restaurant every entity is scoped to
            user_id: User recorded as creator/updater
        """
        self.session = session
        self.restaurant_id = restaurant_id
        self.user_id = user_id
        self.summary = ImportSummary()
        self._cache: dict[tuple[CatalogEntityEnum, str], Any] = {}
        self._counted: set[tuple[CatalogEntityEnum, str]] = set()
        self._restaurant: Restaurant | None = None

    def resolve(
        self, entity_type: CatalogEntityEnum, name: str, attributes: dict[str, Any]
    ) -> tuple[str, bool]:
        """Return ``(id, created)`` for the entity with natural key ``name``.

        Existing entities are returned untouched; attribute reconciliation is
        left to the caller.
        """
        entity, created = self._get_or_create(entity_type, name, attributes)
        return entity.id, created

    def resolve_row(self, row: RowItem) -> ResolvedRow:
        """Resolve every entity referenced by ``row`` and upsert the item itself."""
        category_ids = [self._resolve_category(row, category) for category in row.categories]
        category_ids = list(dict.fromkeys(category_ids))

        sub_category = None
        if row.sub_category is not None:
            sub_category = self._resolve_sub_category(row.sub_category.name, row.sub_category.desc)

        modifier_groups = None
        if row.modifier_groups is not None:
            modifier_groups = [self._resolve_modifier_group(group) for group in row.modifier_groups]

        item, created = self._get_or_create(
            CatalogEntityEnum.ITEM,
            row.name,
            {
                **self._item_attributes(row, sub_category),
                "category_ids": [],
                "modifier_groups": [],
                "created_by": self.user_id,
            },
        )

        previous_category_ids: list[str] = []
        previous_group_ids: list[str] = []
        if not created:
            previous_category_ids = list(item.category_ids or [])
            previous_group_ids = [group["id"] for group in item.modifier_groups or []]
            for attribute, value in self._item_attributes(row, sub_category).items():
                setattr(item, attribute, value)
            item.updated_by = self.user_id

        self._count(CatalogEntityEnum.ITEM, row.name, created)

        return ResolvedRow(
            item_id=item.id,
            item_created=created,
            category_ids=category_ids,
            sub_category=sub_category,
            modifier_groups=modifier_groups,
            previous_category_ids=previous_category_ids,
            previous_modifier_group_ids=previous_group_ids,
        )

    def get_entity(self, entity_type: CatalogEntityEnum, name: str) -> Any:
        """Return a cached entity resolved earlier in this job."""
        return self._cache[(entity_type, name)]

    @property
    def restaurant(self) -> Restaurant:
        if self._restaurant is None:
            self._restaurant = self.session.get(Restaurant, self.restaurant_id)
            if self._restaurant is None:
                raise NotFoundError(
                    f"Restaurant {self.restaurant_id} not found",
                    details={"restaurant_id": self.restaurant_id},
                )
        return self._restaurant

    def _item_attributes(
        self, row: RowItem, sub_category: SubCategorySnapshot | None
    ) -> dict[str, Any]:
        return {
            "desc": row.desc,
            "price": row.price,
            "status": StatusEnum.from_flag(row.status).value,
            "order_limit": row.order_limit,
            "visibility": [entry.to_document() for entry in row.visibility],
            "price_options": [entry.to_document() for entry in row.price_options],
            "options": [entry.to_document() for entry in row.options],
            "availability": list(self.restaurant.availability or []),
            "sub_category": sub_category.to_document() if sub_category else None,
        }

    def _resolve_category(self, row: RowItem, category: RowCategory) -> str:
        if category.status is None:
            visibility = [entry.to_document() for entry in row.visibility]
            status = StatusEnum.ACTIVE
        else:
            status = StatusEnum.from_flag(category.status)
            visibility = [
                VisibilityEntry(menu_type=menu_type, status=status).to_document()
                for menu_type in self._visibility_types(row)
            ]

        entity, created = self._get_or_create(
            CatalogEntityEnum.CATEGORY,
            category.name,
            {
                "desc": category.desc,
                "status": status.value,
                "items": [],
                "visibility": visibility,
                "availability": list(self.restaurant.availability or []),
                "menu_ids": [],
                "created_by": self.user_id,
            },
        )
        if not created:
            if category.desc is not None:
                entity.desc = category.desc
            if category.status is not None:
                entity.status = status.value
                entity.visibility = visibility
            entity.updated_by = self.user_id
        self._count(CatalogEntityEnum.CATEGORY, category.name, created)
        return entity.id

    def _resolve_sub_category(self, name: str, desc: str | None) -> SubCategorySnapshot:
        entity, created = self._get_or_create(
            CatalogEntityEnum.SUB_CATEGORY,
            name,
            {"desc": desc, "created_by": self.user_id},
        )
        if not created and desc is not None:
            entity.desc = desc
        self._count(CatalogEntityEnum.SUB_CATEGORY, name, created)
        return SubCategorySnapshot(id=entity.id, name=entity.name, desc=entity.desc)

    def _resolve_modifier_group(self, group: RowModifierGroup) -> ResolvedModifierGroup:
        entity, created = self._get_or_create(
            CatalogEntityEnum.MODIFIER_GROUP,
            group.name,
            {
                "pricing_type": PriceTypeEnum.INDIVIDUAL_PRICE.value,
                "min_selections": group.min_required,
                "max_selections": group.max_required,
                "modifiers": [],
                "item_ids": [],
                "created_by": self.user_id,
            },
        )
        if not created:
            entity.min_selections = group.min_required
            entity.max_selections = group.max_required
            entity.updated_by = self.user_id
        self._count(CatalogEntityEnum.MODIFIER_GROUP, group.name, created)

        modifier_ids = []
        for modifier in group.modifiers:
            modifier_entity, modifier_created = self._get_or_create(
                CatalogEntityEnum.MODIFIER,
                modifier.name,
                {
                    "price": modifier.price,
                    "pre_select": False,
                    "is_item": False,
                    "modifier_group_ids": [],
                    "created_by": self.user_id,
                },
            )
            if not modifier_created:
                modifier_entity.price = modifier.price
                modifier_entity.updated_by = self.user_id
            self._count(CatalogEntityEnum.MODIFIER, modifier.name, modifier_created)
            modifier_ids.append(modifier_entity.id)

        return ResolvedModifierGroup(
            id=entity.id, name=entity.name, modifier_ids=list(dict.fromkeys(modifier_ids))
        )

    def _visibility_types(self, row: RowItem) -> list[MenuTypeEnum]:
        return [entry.menu_type for entry in row.visibility]

    def _get_or_create(
        self, entity_type: CatalogEntityEnum, name: str, attributes: dict[str, Any]
    ) -> tuple[Any, bool]:
        key = (entity_type, name)
        if key in self._cache:
            return self._cache[key], False

        entity = self._find(entity_type, name)
        if entity is not None:
            self._cache[key] = entity
            return entity, False

        model = ENTITY_TABLES[entity_type]
        try:
            with self.session.begin_nested():
                entity = model(restaurant_id=self.restaurant_id, name=name, **attributes)
                self.session.add(entity)
                self.session.flush()
        except IntegrityError:
            logger.info(
                f"Concurrent create of {entity_type.value} '{name}' for restaurant "
                f"{self.restaurant_id}, continuing as update"
            )
            entity = self._find(entity_type, name)
            if entity is None:
                raise ConflictError(
                    f"Could not resolve {entity_type.value} '{name}' after a key conflict",
                    details={"entity_type": entity_type.value, "name": name},
                ) from None
            self._cache[key] = entity
            return entity, False

        self._cache[key] = entity
        return entity, True

    def _find(self, entity_type: CatalogEntityEnum, name: str) -> Any:
        model = ENTITY_TABLES[entity_type]
        return self.session.scalars(
            select(model).where(model.restaurant_id == self.restaurant_id, model.name == name)
        ).first()

    def _count(self, entity_type: CatalogEntityEnum, name: str, created: bool) -> None:
        key = (entity_type, name)
        if key in self._counted:
            return
        self._counted.add(key)
        counts: EntityCounts = getattr(self.summary, SUMMARY_FIELDS[entity_type])
        if created:
            counts.created += 1
        else:
            counts.updated += 1
