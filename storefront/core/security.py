"""Verification of bearer tokens issued by the identity provider."""
from datetime import datetime, timedelta
from typing import Optional

import jwt
from pydantic import BaseModel

from storefront.core.config import settings

ROLE_ADMIN = "admin"
ROLE_USER = "user"


class Principal(BaseModel):
    id: str
    email: Optional[str] = None
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def create_access_token(subject: str, email: Optional[str] = None, role: str = ROLE_USER,
                        expires_minutes: int = 60) -> str:
    # Only used by tooling and tests; production tokens come from the provider
    now = datetime.utcnow()
    payload = {
        "sub": str(subject),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Principal]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    if not payload.get("sub"):
        return None
    return Principal(
        id=str(payload["sub"]),
        email=payload.get("email"),
        role=payload.get("role") or ROLE_USER,
    )
