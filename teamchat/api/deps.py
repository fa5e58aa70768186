"""FastAPI dependencies for authentication and tenant resolution.

Credentials are verified upstream; requests arrive with a bearer JWT whose
claims carry the principal (``sub``, ``tid``, ``role``).
"""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, Path, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat.core.database import get_session
from teamchat.core.security import decode_jwt
from teamchat.models.user import UserRole

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("tenant_id", "user_id", "user_role")

    def __init__(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        user_role: str,
    ) -> None:
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.user_role = user_role


def resolve_jwt(token: str) -> AuthContext:
    """Decode a JWT and extract tenant_id + user_id."""
    try:
        payload = decode_jwt(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc

    try:
        return AuthContext(
            tenant_id=uuid.UUID(payload["tid"]),
            user_id=uuid.UUID(payload["sub"]),
            user_role=payload.get("role", UserRole.MEMBER),
        )
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> AuthContext:
    """Resolve a bearer token to an AuthContext."""
    return resolve_jwt(credentials.credentials)


async def get_tenant_context(
    tenant_id: Annotated[uuid.UUID, Path()],
    auth: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    """Scope the request to the tenant in the URL.

    Users may only act inside their own tenant; super admins may act in any.
    """
    if auth.user_role != UserRole.SUPER_ADMIN and auth.tenant_id != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this tenant",
        )
    return AuthContext(tenant_id=tenant_id, user_id=auth.user_id, user_role=auth.user_role)


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
TenantAuth = Annotated[AuthContext, Depends(get_tenant_context)]
Session = Annotated[AsyncSession, Depends(get_session)]
