"""Shared FastAPI dependencies."""

from fastapi import Header

from storefront.core.config import get_settings
from storefront.core.exceptions import UnauthorizedError
from storefront.core.security import verify_admin_key

ADMIN_KEY_HEADER = "X-Admin-Key"


async def require_admin(x_admin_key: str | None = Header(None, alias=ADMIN_KEY_HEADER)) -> None:
    """Dependency: require the admin API key when one is configured."""
    expected = get_settings().admin_api_key
    if not expected:
        return
    if not verify_admin_key(x_admin_key, expected):
        raise UnauthorizedError("Admin key required")
