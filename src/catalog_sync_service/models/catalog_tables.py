"""SQLAlchemy tables for the catalog graph.

Every catalog entity is scoped to a restaurant and unique by its natural key
``(restaurant_id, name)``. Cross references are stored the way the catalog is
read: id sets and denormalized snapshot arrays live in JSON columns on both
sides of each relationship. JSON columns are never mutated in place; callers
assign a new list or dict so the ORM flushes the change.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_id() -> str:
    """Generate a system id for a catalog entity."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Declarative base for catalog tables."""

    pass


class Restaurant(Base):
    __tablename__ = "restaurants"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    availability: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (UniqueConstraint("restaurant_id", "name", name="uq_items_restaurant_name"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    order_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    visibility: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    price_options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    options: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    availability: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    category_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    modifier_groups: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    sub_category: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_categories_restaurant_name"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    visibility: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    availability: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    menu_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class SubCategory(Base):
    __tablename__ = "sub_categories"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_sub_categories_restaurant_name"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class ModifierGroup(Base):
    __tablename__ = "modifier_groups"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_modifier_groups_restaurant_name"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    pricing_type: Mapped[str] = mapped_column(String(32), nullable=False)
    min_selections: Mapped[int] = mapped_column(Integer, default=0)
    max_selections: Mapped[int] = mapped_column(Integer, default=1)
    modifiers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    item_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Modifier(Base):
    __tablename__ = "modifiers"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_modifiers_restaurant_name"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    desc: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    pre_select: Mapped[bool] = mapped_column(Boolean, default=False)
    is_item: Mapped[bool] = mapped_column(Boolean, default=False)
    modifier_group_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class Menu(Base):
    __tablename__ = "menus"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    categories: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    taxes: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class TaxRate(Base):
    __tablename__ = "tax_rates"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    restaurant_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(60), nullable=False)
    sales_tax: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)


class ItemOption(Base):
    """Master option registry entry (one row per option type)."""

    __tablename__ = "item_options"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    type: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(60), nullable=False)
    desc: Mapped[str] = mapped_column(String(160), nullable=False, default="")


class Config(Base):
    """Master configuration value (e.g. the import row ceiling)."""

    __tablename__ = "configs"

    type: Mapped[str] = mapped_column(String(32), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
