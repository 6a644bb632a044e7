"""Ingestion validator turning spreadsheet rows and POS items into RowItems.

The whole batch is rejected on the first invalid row. For spreadsheet uploads
``collect_issues`` reports every problem found so the upload can be reviewed.
"""

import logging
import re
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, NoReturn

from pydantic import ValidationError as PydanticValidationError

from catalog_sync_service.exceptions import ConflictError, ValidationError
from catalog_sync_service.models.catalog_models import (
    MENU_TYPE_HEADERS,
    ItemOptionEntry,
    ItemOptionsEnum,
    MenuTypeEnum,
    PriceOption,
    RowCategory,
    RowItem,
    RowModifier,
    RowModifierGroup,
    RowSubCategory,
    StatusEnum,
    VisibilityEntry,
)
from catalog_sync_service.repositories.masters_repository import RestaurantContext

logger = logging.getLogger(__name__)

VALID_STRING_PATTERN = re.compile(r"^[a-zA-Z0-9- ]*$")
NAME_MAX_LENGTH = 60
DESC_MIN_LENGTH = 20
DESC_MAX_LENGTH = 160
PRICE_QUANTUM = Decimal("0.01")

LEADING_HEADERS = [
    "Category",
    "Category Desc",
    "Sub Category",
    "Sub Category Desc",
    "Item Name",
    "Item Desc",
    "Item Price",
    "Item Status",
]
ORDER_LIMIT_HEADER = "Item Limit"

ISSUE_INVALID = "invalid"
ISSUE_DUPLICATE = "duplicate"


def expected_headers(option_types: list[ItemOptionsEnum]) -> list[str]:
    """Build the versioned spreadsheet header.

    Args:
        option_types: Item option types registered in the option registry

    Returns:
        list: Column headers in upload order
    """
    return [
        *LEADING_HEADERS,
        *(MENU_TYPE_HEADERS[menu_type] for menu_type in MenuTypeEnum),
        ORDER_LIMIT_HEADER,
        *(option_type.value for option_type in option_types),
    ]


@dataclass
class RowIssue:
    """One problem found in an uploaded row.

    Attributes:
        row: 1-based row number (spreadsheet rows count the header as row 1)
        field: Column or field name
        message: Human readable description
        code: ``invalid`` or ``duplicate``
    """

    row: int
    field: str
    message: str
    code: str = ISSUE_INVALID

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


class RowValidator:
    """Validates and normalizes import rows for one restaurant."""

    def __init__(self, context: RestaurantContext) -> None:
        """Initialize the validator.

        Args:
            context: Restaurant channels, option registry and row ceiling
        """
        self.context = context
        self.headers = expected_headers([option.type for option in context.item_options])

    # Spreadsheet input

    def validate_spreadsheet(self, header: list[Any], rows: list[list[Any]]) -> list[RowItem]:
        """Validate a spreadsheet upload and return canonical rows.

        Raises:
            ValidationError: On a header mismatch or the first invalid row
            ConflictError: When two rows share an item name
        """
        self.check_header(header)
        items, issues = self._parse_spreadsheet(self._truncate(rows), stop_on_first=True)
        if issues:
            self._raise_issue(issues[0])
        return items

    def collect_issues(self, header: list[Any], rows: list[list[Any]]) -> list[RowIssue]:
        """Return every issue in a spreadsheet upload instead of stopping at the first."""
        try:
            self.check_header(header)
        except ValidationError as e:
            return [RowIssue(row=1, field="header", message=e.message)]
        _, issues = self._parse_spreadsheet(self._truncate(rows), stop_on_first=False)
        return issues

    def check_header(self, header: list[Any]) -> None:
        actual = [_text(cell) for cell in header]
        if actual != self.headers:
            raise ValidationError(
                "Headers are not matching, please try again!",
                details={"expected": self.headers, "actual": actual},
            )

    def _truncate(self, rows: list[Any]) -> list[Any]:
        if len(rows) > self.context.max_rows:
            logger.warning(
                f"Truncating import for restaurant {self.context.restaurant_id} "
                f"from {len(rows)} to {self.context.max_rows} rows"
            )
            return rows[: self.context.max_rows]
        return rows

    def _parse_spreadsheet(
        self, rows: list[list[Any]], stop_on_first: bool
    ) -> tuple[list[RowItem], list[RowIssue]]:
        items: list[RowItem] = []
        issues: list[RowIssue] = []
        seen_names: set[str] = set()

        for index, cells in enumerate(rows):
            row_number = index + 2
            cells = list(cells) + [None] * (len(self.headers) - len(cells))
            values = dict(zip(self.headers, cells))

            item, row_issues = self._parse_spreadsheet_row(row_number, values)
            if item is not None and item.name in seen_names:
                row_issues.append(
                    RowIssue(
                        row=row_number,
                        field="Item Name",
                        message="Item name cannot be same, please try again",
                        code=ISSUE_DUPLICATE,
                    )
                )
            if row_issues:
                issues.extend(row_issues)
                if stop_on_first:
                    break
                continue

            if item is not None:
                seen_names.add(item.name)
                items.append(item)

        return items, issues

    def _parse_spreadsheet_row(
        self, row_number: int, values: dict[str, Any]
    ) -> tuple[RowItem | None, list[RowIssue]]:
        issues: list[RowIssue] = []

        category = self._name(values, "Category", row_number, issues, required=True)
        category_desc = self._desc(values, "Category Desc", row_number, issues)
        sub_category = self._name(values, "Sub Category", row_number, issues, required=False)
        sub_category_desc = self._desc(values, "Sub Category Desc", row_number, issues)
        name = self._name(values, "Item Name", row_number, issues, required=True)
        desc = self._desc(values, "Item Desc", row_number, issues)
        price = self._price(values.get("Item Price"), "Item Price", row_number, issues)
        status = self._flag(values, "Item Status", row_number, issues, required=True)
        order_limit = self._order_limit(values.get(ORDER_LIMIT_HEADER), row_number, issues)

        channel_flags = {
            menu_type: self._flag(
                values, MENU_TYPE_HEADERS[menu_type], row_number, issues, required=True
            )
            for menu_type in MenuTypeEnum
        }
        option_flags = {
            option.type: self._flag(values, option.type.value, row_number, issues, required=False)
            for option in self.context.item_options
        }

        if option_flags.get(ItemOptionsEnum.IS_VEGAN) and option_flags.get(ItemOptionsEnum.IS_HALAL):
            issues.append(
                RowIssue(
                    row=row_number,
                    field=ItemOptionsEnum.IS_HALAL.value,
                    message="Item cannot be halal and vegan at the same time",
                )
            )

        if issues:
            return None, issues

        item = self._build_row_item(
            row_number,
            issues,
            name=name,
            desc=desc,
            price=price,
            status=bool(status),
            order_limit=order_limit,
            categories=[RowCategory(name=category, desc=category_desc)],
            sub_category=(
                RowSubCategory(name=sub_category, desc=sub_category_desc) if sub_category else None
            ),
            modifier_groups=None,
            visibility=[
                VisibilityEntry(menu_type=menu_type, status=StatusEnum.from_flag(channel_flags[menu_type]))
                for menu_type in self.context.menu_types
            ],
            option_flags=option_flags,
        )
        return item, issues

    # POS input

    def validate_pos_items(self, items: list[dict[str, Any]]) -> list[RowItem]:
        """Validate vendor items already mapped to the adapter's neutral shape.

        Each item is ``{name, desc?, price, status, categories: [{name, status}],
        modifier_groups: [{name, min_required, max_required, modifiers: [{name, price}]}]}``.

        Raises:
            ValidationError: On the first invalid item
            ConflictError: When two items share a name
        """
        rows: list[RowItem] = []
        seen_names: set[str] = set()

        for index, raw in enumerate(self._truncate(items)):
            row_number = index + 1
            issues: list[RowIssue] = []

            name = self._name(raw, "name", row_number, issues, required=True)
            desc = self._desc(raw, "desc", row_number, issues)
            price = self._price(raw.get("price"), "price", row_number, issues)
            status = self._flag(raw, "status", row_number, issues, required=True)

            categories: list[RowCategory] = []
            for category in raw.get("categories") or []:
                category_name = self._name(category, "name", row_number, issues, required=True)
                category_status = self._flag(category, "status", row_number, issues, required=False)
                categories.append(
                    RowCategory(name=category_name or "-", status=bool(category_status))
                )
            if not categories:
                issues.append(
                    RowIssue(
                        row=row_number,
                        field="categories",
                        message="Item must belong to at least one category",
                    )
                )

            modifier_groups = [
                self._pos_modifier_group(group, row_number, issues)
                for group in raw.get("modifier_groups") or []
            ]

            if not issues and name in seen_names:
                raise ConflictError(
                    f"Item name {name} appears more than once in the import",
                    details={"row": row_number, "field": "name"},
                )
            if issues:
                self._raise_issue(issues[0])

            row = self._build_row_item(
                row_number,
                issues,
                name=name,
                desc=desc,
                price=price,
                status=bool(status),
                order_limit=None,
                categories=categories,
                sub_category=None,
                modifier_groups=modifier_groups,
                visibility=[
                    VisibilityEntry(menu_type=menu_type, status=StatusEnum.from_flag(bool(status)))
                    for menu_type in self.context.menu_types
                ],
                option_flags={},
            )
            if issues or row is None:
                self._raise_issue(issues[0])
            seen_names.add(name)
            rows.append(row)

        return rows

    def _pos_modifier_group(
        self, raw: dict[str, Any], row_number: int, issues: list[RowIssue]
    ) -> RowModifierGroup:
        name = self._name(raw, "name", row_number, issues, required=True)
        min_required = raw.get("min_required") or 0
        max_required = raw.get("max_required") or 1
        if not isinstance(min_required, int) or not isinstance(max_required, int):
            issues.append(
                RowIssue(row=row_number, field="modifier_groups", message="Selections must be integers")
            )
            min_required, max_required = 0, 1
        elif min_required < 0 or max_required < min_required:
            issues.append(
                RowIssue(
                    row=row_number,
                    field="modifier_groups",
                    message=f"Invalid selection bounds for modifier group {name}",
                )
            )

        modifiers = []
        for modifier in raw.get("modifiers") or []:
            modifier_name = self._name(modifier, "name", row_number, issues, required=True)
            modifier_price = self._amount(modifier.get("price", 0), "price", row_number, issues, allow_zero=True)
            modifiers.append(RowModifier(name=modifier_name or "-", price=modifier_price or Decimal("0")))

        return RowModifierGroup(
            name=name or "-",
            min_required=max(min_required, 0),
            max_required=max(max_required, 0),
            modifiers=modifiers,
        )

    # Cell checks

    def _name(
        self,
        values: dict[str, Any],
        field: str,
        row_number: int,
        issues: list[RowIssue],
        required: bool,
    ) -> str:
        value = _text(values.get(field))
        if not value:
            if required:
                issues.append(RowIssue(row=row_number, field=field, message=f"{field} is required"))
            return ""
        if not VALID_STRING_PATTERN.match(value):
            issues.append(
                RowIssue(
                    row=row_number,
                    field=field,
                    message=f"{field} may only contain letters, digits, hyphens and spaces",
                )
            )
        elif len(value) > NAME_MAX_LENGTH:
            issues.append(
                RowIssue(
                    row=row_number,
                    field=field,
                    message=f"{field} must be at most {NAME_MAX_LENGTH} characters",
                )
            )
        return value

    def _desc(
        self, values: dict[str, Any], field: str, row_number: int, issues: list[RowIssue]
    ) -> str | None:
        value = _text(values.get(field))
        if not value:
            return None
        if not VALID_STRING_PATTERN.match(value):
            issues.append(
                RowIssue(
                    row=row_number,
                    field=field,
                    message=f"{field} may only contain letters, digits, hyphens and spaces",
                )
            )
        elif not DESC_MIN_LENGTH <= len(value) <= DESC_MAX_LENGTH:
            issues.append(
                RowIssue(
                    row=row_number,
                    field=field,
                    message=f"{field} must be between {DESC_MIN_LENGTH} and {DESC_MAX_LENGTH} characters",
                )
            )
        return value

    def _price(self, value: Any, field: str, row_number: int, issues: list[RowIssue]) -> Decimal:
        return self._amount(value, field, row_number, issues, allow_zero=False) or Decimal("0")

    def _amount(
        self, value: Any, field: str, row_number: int, issues: list[RowIssue], allow_zero: bool
    ) -> Decimal | None:
        try:
            amount = Decimal(_text(value))
        except InvalidOperation:
            issues.append(RowIssue(row=row_number, field=field, message=f"{field} must be a number"))
            return None
        if not amount.is_finite() or amount < 0 or (amount == 0 and not allow_zero):
            issues.append(
                RowIssue(row=row_number, field=field, message=f"{field} must be greater than zero")
            )
            return None
        return amount.quantize(PRICE_QUANTUM)

    def _order_limit(self, value: Any, row_number: int, issues: list[RowIssue]) -> int | None:
        text = _text(value)
        if not text:
            return None
        try:
            limit = Decimal(text)
        except InvalidOperation:
            limit = None
        if limit is None or not limit.is_finite() or limit <= 0 or limit != limit.to_integral_value():
            issues.append(
                RowIssue(
                    row=row_number,
                    field=ORDER_LIMIT_HEADER,
                    message=f"{ORDER_LIMIT_HEADER} must be a whole number greater than zero",
                )
            )
            return None
        return int(limit)

    def _flag(
        self,
        values: dict[str, Any],
        field: str,
        row_number: int,
        issues: list[RowIssue],
        required: bool,
    ) -> bool | None:
        value = values.get(field)
        if isinstance(value, bool):
            return value
        text = _text(value).lower()
        if text == "":
            if required:
                issues.append(RowIssue(row=row_number, field=field, message=f"{field} is required"))
            return False
        if text not in ("true", "false"):
            issues.append(
                RowIssue(row=row_number, field=field, message=f"{field} must be true or false")
            )
            return None
        return text == "true"

    # Assembly

    def _build_row_item(
        self,
        row_number: int,
        issues: list[RowIssue],
        *,
        name: str,
        desc: str | None,
        price: Decimal,
        status: bool,
        order_limit: int | None,
        categories: list[RowCategory],
        sub_category: RowSubCategory | None,
        modifier_groups: list[RowModifierGroup] | None,
        visibility: list[VisibilityEntry],
        option_flags: dict[ItemOptionsEnum, bool | None],
    ) -> RowItem | None:
        options = [
            ItemOptionEntry(
                id=option.id,
                type=option.type,
                display_name=option.display_name,
                desc=option.desc,
                status=bool(option_flags.get(option.type)),
            )
            for option in self.context.item_options
            if option.type in option_flags
        ]
        try:
            return RowItem(
                name=name,
                desc=desc,
                price=price,
                status=status,
                order_limit=order_limit,
                categories=categories,
                sub_category=sub_category,
                modifier_groups=modifier_groups,
                visibility=visibility,
                price_options=[
                    PriceOption(menu_type=entry.menu_type, price=price) for entry in visibility
                ],
                options=options,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            issues.append(
                RowIssue(
                    row=row_number,
                    field=".".join(str(part) for part in first["loc"]),
                    message=first["msg"],
                )
            )
            return None

    def _raise_issue(self, issue: RowIssue) -> NoReturn:
        details = {"row": issue.row, "field": issue.field}
        if issue.code == ISSUE_DUPLICATE:
            raise ConflictError(issue.message, details=details)
        raise ValidationError(f"Row {issue.row}: {issue.message}", details=details)
