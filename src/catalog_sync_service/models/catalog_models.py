"""Catalog data models.

Enumerations, embedded snapshot records and the canonical ``RowItem`` that the
ingestion validator produces. Snapshots are the few fields of a referenced
entity copied inline into another entity for read efficiency; they are stored
in JSON columns via ``to_document``.
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StatusEnum(str, Enum):
    """Active/inactive status shared by all catalog entities."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def from_flag(cls, flag: bool) -> "StatusEnum":
        return cls.ACTIVE if flag else cls.INACTIVE


class MenuTypeEnum(str, Enum):
    """Order channels a menu can be published on."""

    ONLINE_ORDERING = "onlineOrdering"
    DINE_IN = "dineIn"
    CATERING = "catering"


# Spreadsheet column header for each order channel
MENU_TYPE_HEADERS: dict[MenuTypeEnum, str] = {
    MenuTypeEnum.ONLINE_ORDERING: "Online Ordering",
    MenuTypeEnum.DINE_IN: "Dine In",
    MenuTypeEnum.CATERING: "Catering",
}


class ItemOptionsEnum(str, Enum):
    """Item option flags registered in the master option registry."""

    POPULAR_ITEM = "PopularItem"
    UPSELL_ITEM = "UpSellItem"
    IS_SPICY = "IsSpicy"
    IS_VEGAN = "IsVegan"
    IS_HALAL = "IsHalal"
    IS_GLUTEN_FREE = "IsGlutenFree"
    HAS_NUTS = "HasNuts"


class PriceTypeEnum(str, Enum):
    """Pricing strategy of a modifier group."""

    FREE_OF_CHARGE = "FreeOfCharge"
    SAME_PRICE = "SamePrice"
    INDIVIDUAL_PRICE = "IndividualPrice"


class CatalogEntityEnum(str, Enum):
    """Entity types addressable by natural key."""

    ITEM = "item"
    CATEGORY = "category"
    SUB_CATEGORY = "sub_category"
    MODIFIER_GROUP = "modifier_group"
    MODIFIER = "modifier"


class SnapshotModel(BaseModel):
    """Base for embedded records persisted inside JSON columns."""

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (Decimal prices become strings)."""
        return self.model_dump(mode="json")


class VisibilityEntry(SnapshotModel):
    menu_type: MenuTypeEnum
    status: StatusEnum


class PriceOption(SnapshotModel):
    menu_type: MenuTypeEnum
    price: Decimal


class ItemOptionEntry(SnapshotModel):
    """Resolved item option flag with its registry id."""

    id: str
    type: ItemOptionsEnum
    display_name: str
    desc: str
    status: bool = False


class ItemSnapshot(SnapshotModel):
    """Item as embedded in ``Category.items``."""

    id: str
    name: str
    price: Decimal
    status: StatusEnum
    image: str | None = None


class CategorySnapshot(SnapshotModel):
    """Category as embedded in ``Menu.categories``."""

    id: str
    name: str
    status: StatusEnum


class SubCategorySnapshot(SnapshotModel):
    """Sub-category as embedded in ``Item.sub_category``."""

    id: str
    name: str
    desc: str | None = None


class ModifierGroupSnapshot(SnapshotModel):
    """Modifier group as embedded in ``Item.modifier_groups``."""

    id: str
    name: str
    pricing_type: PriceTypeEnum


class ModifierSnapshot(SnapshotModel):
    """Modifier as embedded in ``ModifierGroup.modifiers``."""

    id: str
    name: str
    desc: str | None = None
    price: Decimal
    pre_select: bool = False
    is_item: bool = False


class TaxSnapshot(SnapshotModel):
    """Tax rate as embedded in ``Menu.taxes``."""

    id: str
    name: str
    sales_tax: Decimal


class RowCategory(BaseModel):
    """Category reference carried by a row.

    ``status`` is only known for POS rows; spreadsheet rows leave it unset and
    new categories inherit the item's per-channel visibility instead.
    """

    name: str = Field(..., min_length=1)
    desc: str | None = None
    status: bool | None = None


class RowSubCategory(BaseModel):
    name: str = Field(..., min_length=1)
    desc: str | None = None


class RowModifier(BaseModel):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class RowModifierGroup(BaseModel):
    name: str = Field(..., min_length=1)
    min_required: int = Field(default=0, ge=0)
    max_required: int = Field(default=1, ge=0)
    modifiers: list[RowModifier] = Field(default_factory=list)


class RowItem(BaseModel):
    """Canonical, validated representation of one imported catalog row.

    ``modifier_groups`` is ``None`` when the source does not describe modifier
    groups (spreadsheets); existing modifier-group memberships are then left
    untouched. A list (possibly empty) is authoritative.
    """

    name: str = Field(..., min_length=1, max_length=60)
    desc: str | None = None
    price: Decimal = Field(..., gt=0)
    status: bool = True
    order_limit: int | None = Field(default=None, gt=0)
    categories: list[RowCategory] = Field(..., min_length=1)
    sub_category: RowSubCategory | None = None
    modifier_groups: list[RowModifierGroup] | None = None
    visibility: list[VisibilityEntry] = Field(default_factory=list)
    price_options: list[PriceOption] = Field(default_factory=list)
    options: list[ItemOptionEntry] = Field(default_factory=list)
