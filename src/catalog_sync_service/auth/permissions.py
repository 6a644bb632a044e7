"""Capability checks for catalog sync operations."""

from enum import Enum

from catalog_sync_service.exceptions import AuthorizationError


class PermissionTypeEnum(str, Enum):
    MENU = "Menu"
    INTEGRATIONS = "Integrations"
    UPDATE_TAX = "Update Tax"


def user_has_permission(permissions: list[str], *required: PermissionTypeEnum) -> bool:
    """Return True when the capability set holds any of ``required``."""
    granted = set(permissions)
    return any(permission.value in granted for permission in required)


def require_permission(permissions: list[str], *required: PermissionTypeEnum) -> None:
    """Raise AuthorizationError unless the capability set holds any of ``required``."""
    if not user_has_permission(permissions, *required):
        raise AuthorizationError(
            "You are not authorised to perform this action",
            details={"required": [permission.value for permission in required]},
        )
