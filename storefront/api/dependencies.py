import logging
from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from storefront.core.exceptions import Unauthenticated, Unauthorized
from storefront.core.security import Principal, decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def ok(data: Any = None) -> dict:
    return {"success": True, "data": data}


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    principal = decode_token(credentials.credentials)
    if principal is None:
        logger.warning("Bearer token failed verification (invalid or expired)")
    return principal


async def require_principal(
    principal: Optional[Principal] = Depends(get_current_principal),
) -> Principal:
    if principal is None:
        raise Unauthenticated("Not authenticated")
    return principal


async def require_customer(
    principal: Optional[Principal] = Depends(get_current_principal),
) -> Principal:
    """Signed-in customer placing an order"""
    if principal is None:
        raise Unauthenticated()
    return principal


async def require_admin(
    principal: Optional[Principal] = Depends(get_current_principal),
) -> Principal:
    if principal is None:
        raise Unauthenticated("Not authenticated")
    if not principal.is_admin:
        logger.warning(f"User {principal.id} denied admin access")
        raise Unauthorized()
    return principal
