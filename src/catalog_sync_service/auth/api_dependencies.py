"""FastAPI dependencies for API authentication and caller capabilities."""

from typing import Annotated

from fastapi import Header, HTTPException

from catalog_sync_service.auth.api_key_validator import APIKeyValidator


def get_api_key_from_header(
    x_api_key: Annotated[str | None, Header()] = None,
    validator: APIKeyValidator | None = None,
) -> str:
    """Extract and validate the API key from the X-API-Key header.

    Args:
        x_api_key: API key from X-API-Key header (injected by FastAPI)
        validator: APIKeyValidator instance

    Returns:
        str: The validated API key

    Raises:
        HTTPException: 401 if API key is missing or invalid
    """
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API key")

    if validator and not validator.validate(x_api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")

    return x_api_key


def get_permissions_from_header(
    x_user_permissions: Annotated[str | None, Header()] = None,
) -> list[str]:
    """Parse the caller's capability set from the comma separated X-User-Permissions header.

    The gateway in front of this service authenticates the user and forwards
    their capabilities; an absent header means no capabilities.
    """
    if not x_user_permissions:
        return []
    return [permission.strip() for permission in x_user_permissions.split(",") if permission.strip()]
